"""
Puzzle constants: tier names, cache sizing, retry policy, and scoring.

All numeric constants used by the puzzle core are defined here so that the
cache, fetcher, and session never introduce new magic numbers. Centralizing
them makes tuning the difficulty curve and the scoring formula much easier.
"""

# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------
# A tier is a named difficulty pool on the content store. The progression
# engine only ever selects tutorial, core-loop, and spice; boss is reachable
# through an explicit mode override.

TUTORIAL: str = "tutorial"
CORE_LOOP: str = "core-loop"
SPICE: str = "spice"
BOSS: str = "boss"

# Tier directory name -> file-name prefix used by the batch tool.
# Chunk files live at {CDN_BASE}/{tier}/{file_name}-{index}.json.gz
TIER_FILE_NAMES: dict[str, str] = {
    TUTORIAL:  "tutorial",
    CORE_LOOP: "coreLoop",
    SPICE:     "spice",
    BOSS:      "boss",
}

# ---------------------------------------------------------------------------
# Content store
# ---------------------------------------------------------------------------

DEFAULT_CDN_BASE: str = "http://localhost:8000/puzzles"
METADATA_FILE: str = "metadata.json"
CHUNK_SUFFIX: str = ".json.gz"

# Puzzles per chunk file, fixed by the batch tool.
CHUNK_SIZE: int = 100

# Frame magic numbers used to pick a decompressor.
GZIP_MAGIC: bytes = b"\x1f\x8b"
ZSTD_MAGIC: bytes = b"\x28\xb5\x2f\xfd"

# ---------------------------------------------------------------------------
# Cache and fetch policy
# ---------------------------------------------------------------------------
# At most CACHE_CAPACITY decoded chunks stay resident. Eviction is by
# insertion order, not by read recency.

CACHE_CAPACITY: int = 5

DEFAULT_RETRIES: int = 3
DEFAULT_TIMEOUT_MS: int = 5_000
# Backoff between attempts: BACKOFF_BASE_MS * 2**attempt (1s, 2s, 4s, ...)
BACKOFF_BASE_MS: int = 1_000

# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------

TUTORIAL_STREAK: int = 3   # streak below this serves tutorial puzzles
RAMP_STREAK: int = 8       # streak below this serves core-loop puzzles
RAMP_CHUNK_STEP: int = 2   # new core-loop chunk every 2 solves on the ramp
SPICE_PERIOD: int = 5      # every 5th puzzle past the ramp is spice
SPICE_SLOT: int = 4        # ... specifically the one with remainder 4
CORE_CHUNK_STEP: int = 5
SPICE_CHUNK_STEP: int = 10

# ---------------------------------------------------------------------------
# Session and scoring
# ---------------------------------------------------------------------------

SESSION_SECONDS: float = 60.0
BASE_POINTS: int = 100

# streak_multiplier = min(MAX_STREAK_MULTIPLIER, 1 + streak * STREAK_STEP)
STREAK_STEP: float = 0.1
MAX_STREAK_MULTIPLIER: float = 3.0

# speed_bonus = max(1, MAX_SPEED_BONUS - seconds / SPEED_WINDOW_SECONDS)
MAX_SPEED_BONUS: float = 2.0
SPEED_WINDOW_SECONDS: float = 15.0

# ---------------------------------------------------------------------------
# Goal text
# ---------------------------------------------------------------------------

MATE_THEMES: tuple[tuple[str, str], ...] = (
    ("mateIn1", "Mate in 1"),
    ("mateIn2", "Mate in 2"),
    ("mateIn3", "Mate in 3"),
)
TACTICAL_MOTIFS: tuple[str, ...] = ("fork", "pin", "skewer", "doubleCheck")
FALLBACK_GOAL: str = "Find the best tactic"
