"""
Interface package: text front ends for the puzzle core.

Modules:
    terminal  Line protocol for playing a timed session from a terminal.
              Reads commands from stdin, writes responses to stdout.
              Run with: python -m interface.terminal
"""
