# config.py
import os

# ======= Grid =======
GRID_WIDTH  = int(os.getenv("WFC_GRID_WIDTH", "12"))
GRID_HEIGHT = int(os.getenv("WFC_GRID_HEIGHT", "12"))

# ======= Seed =======
SEED = int(os.getenv("WFC_SEED", "42"))

# ======= Lifecycle timings (milliseconds) =======
CONSTRUCTING_MS = float(os.getenv("WFC_CONSTRUCTING_MS", "500"))
REMOVING_MS     = float(os.getenv("WFC_REMOVING_MS", "300"))

# ======= Solver guards =======
# Contradictions always terminate, but a pathological catalog/inventory can
# still backtrack for a long time.  Past this ceiling the run is Failed.
MAX_BACKTRACKS = int(os.getenv("WFC_MAX_BACKTRACKS", "20000"))
STEPS_PER_TICK = int(os.getenv("WFC_STEPS_PER_TICK", "4"))

# ======= Sampling weights =======
GRASS_WEIGHT     = float(os.getenv("WFC_GRASS_WEIGHT", "0.6"))
LOT_WEIGHT       = float(os.getenv("WFC_LOT_WEIGHT", "1.0"))
ROAD_WEIGHT      = float(os.getenv("WFC_ROAD_WEIGHT", "1.0"))
LOT_ENTRY_WEIGHT = float(os.getenv("WFC_LOT_ENTRY_WEIGHT", "0.8"))

# ======= Inventory =======
DEFAULT_LOT_STOCK = int(os.getenv("WFC_DEFAULT_LOT_STOCK", "3"))

# ======= Output names =======
SAVE_OUT    = os.getenv("WFC_SAVE_OUT", "world.json")
PREVIEW_OUT = os.getenv("WFC_PREVIEW_OUT", "world_view.html")
RUN_LOG     = os.getenv("WFC_RUN_LOG", "logs/wfc_runs.log")

class CFG:
    GRID_WIDTH  = GRID_WIDTH
    GRID_HEIGHT = GRID_HEIGHT

    SEED = SEED

    CONSTRUCTING_MS = CONSTRUCTING_MS
    REMOVING_MS     = REMOVING_MS

    MAX_BACKTRACKS = MAX_BACKTRACKS
    STEPS_PER_TICK = STEPS_PER_TICK

    GRASS_WEIGHT     = GRASS_WEIGHT
    LOT_WEIGHT       = LOT_WEIGHT
    ROAD_WEIGHT      = ROAD_WEIGHT
    LOT_ENTRY_WEIGHT = LOT_ENTRY_WEIGHT

    DEFAULT_LOT_STOCK = DEFAULT_LOT_STOCK

    SAVE_OUT    = SAVE_OUT
    PREVIEW_OUT = PREVIEW_OUT
    RUN_LOG     = RUN_LOG

__all__ = ["CFG"]
