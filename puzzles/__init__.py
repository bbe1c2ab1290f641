"""
Chess puzzle rush core.

Serves chess puzzles in progressively harder tiers from chunked, compressed
files on a remote content store, and scores a timed session of move-by-move
attempts.

Modules:
    constants    Tier names, cache sizing, retry policy, scoring parameters
    config       PuzzleConfig with PUZZLE_* environment overrides
    errors       NetworkError, DecodeError, InitializationError
    models       PuzzleRecord and the session's result objects
    fetcher      HTTP GET with shared timeout and exponential backoff
    decoder      gzip/zstd chunk decoding into PuzzleRecord tuples
    cache        Bounded FIFO chunk cache and background prefetcher
    progression  Streak -> (tier, chunk index) difficulty curve
    session      Timer, streak, and scoring state machine
    manager      Wires the above together and creates sessions
"""
