# ===== COLONY SETTINGS =====
# Bases simulated by run.py. Each gets its own random terrain.
BASE_NAMES = ["W1N1", "W3N2"]

# Seed for terrain generation and the planner's ring shuffle.
# Set to None for a different layout every run.
SEED = 7

# ===== TERRAIN =====
# Fraction of cells turned into wall / slow terrain before the anchor area
# is cleared. Higher wall density makes placement and pathing harder.
WALL_DENSITY = 0.08
SLOW_DENSITY = 0.10
SOURCES_PER_BASE = 2

# ===== SIMULATION =====
# Number of ticks to simulate.
TICKS = 3000

# Tier reached at a given tick (the highest key <= current tick wins).
TIER_SCHEDULE = {
    0: 1,
    40: 2,
    150: 3,
    400: 4,
    800: 5,
    1300: 6,
    1900: 7,
    2500: 8,
}

# Build markers the stub worker completes per tick, across all bases.
WORKER_RATE = 1

# ===== PLANNER =====
# "ring"   : ring sweep around the anchor with spaced extensions
# "scored" : candidate pools scored by distance, road adjacency and clustering
EXTENSION_LAYOUT = "ring"

# Ticks between alignment audits.
AUDIT_INTERVAL = 500

# ===== OUTPUT =====
# Plans and execution state are written here as the run progresses (the file
# is started fresh every run). Set to None to keep everything in memory.
STORE_PATH = "colony_store.json"

# When True, run.py renders every base's final tier (PNG + ASCII) into RENDER_DIR.
RENDER_PLANS = True
RENDER_DIR = "plans"
