"""I centralise the numeric knobs for the colony engine so balance tweaks live in one place."""

# --- Protocol / persistence ---
# I bump this whenever memory blobs change shape; older records go through migrations at load.
PROTOCOL_VERSION: int = 3

# --- World geometry ---
ZONE_SIZE: int = 50
MY_OWNER: str = "colony"
HOSTILE_OWNER: str = "invader"

# Terrain codes inside a zone grid
TERRAIN_PLAIN: int = 0
TERRAIN_SWAMP: int = 1
TERRAIN_WALL: int = 2

# --- Body composition ---
PART_COST = {
    "gather": 100,
    "transport": 50,
    "mobility": 50,
    "melee": 80,
    "ranged": 150,
    "heal": 250,
    "claim": 600,
    "armor": 10,
}
CARRY_PER_PART: int = 50
MAX_BODY_PARTS: int = 50
GATHER_PER_PART: int = 2
BUILD_PER_PART: int = 5
REPAIR_PER_PART: int = 100
UPGRADE_PER_PART: int = 1
DISMANTLE_PER_PART: int = 50
MELEE_DAMAGE_PER_PART: int = 30
RANGED_DAMAGE_PER_PART: int = 10
HEAL_PER_PART: int = 12
RESERVE_PER_PART: int = 1
HITS_PER_PART: int = 100

# --- Desired population per zone level (1..8) ---
DESIRED_COUNTS = {
    "harvester": {1: 3, 2: 4, 3: 4, 4: 2, 5: 2, 6: 2, 7: 2, 8: 2},
    "hauler": {1: 0, 2: 1, 3: 2, 4: 2, 5: 2, 6: 2, 7: 2, 8: 2},
    "builder": {1: 2, 2: 3, 3: 4, 4: 5, 5: 1, 6: 1, 7: 1, 8: 1},
    "repairer": {1: 0, 2: 0, 3: 1, 4: 1, 5: 1, 6: 1, 7: 1, 8: 1},
    "upgrader": {1: 5, 2: 5, 3: 6, 4: 8, 5: 2, 6: 1, 7: 1, 8: 1},
    "defender": {1: 0, 2: 1, 3: 1, 4: 1, 5: 1, 6: 2, 7: 2, 8: 2},
    "claimer": {1: 0, 2: 0, 3: 1, 4: 1, 5: 1, 6: 1, 7: 1, 8: 1},
    "scout": {1: 0, 2: 1, 3: 1, 4: 1, 5: 1, 6: 1, 7: 1, 8: 1},
    "destroyer": {1: 0, 2: 1, 3: 1, 4: 1, 5: 1, 6: 1, 7: 1, 8: 1},
}
# Spawn queue order when several roles are short
SPAWN_ORDER = ["harvester", "hauler", "defender", "destroyer", "upgrader", "builder", "repairer", "claimer", "scout"]

# --- Task priorities (higher = more urgent) ---
TASK_PRIORITY = {
    "defense": 100,
    "refill_spawn": 100,
    "heal": 95,
    "harvest": 90,
    "fortification_urgent": 90,
    "remote_withdraw": 80,
    "remote_harvest": 70,
    "refill_tower": 60,
    "reserve": 60,
    "claim": 60,
    "dismantle": 55,
    "build": 50,
    "repair": 40,
    "upgrade": 30,
    "withdraw": 20,
    "pickup": 10,
}
# Per-kind cap on concurrent assignees; kinds not listed are unlimited
TASK_MAX_AGENTS = {
    "harvest": 1,
    "transfer": 1,
    "pickup": 1,
    "repair": 1,
    "heal": 1,
    "claim_controller": 1,
    "reserve_controller": 1,
}
TASK_AGE_CEILING: int = 300
STATS_LOG_INTERVAL: int = 100

# --- Demand scanning thresholds ---
REPAIR_HEALTH_FRACTION: float = 0.75
FORTIFICATION_HITS_FLOOR: int = 1_000_000
FORTIFICATION_URGENT_HITS: int = 5000
PICKUP_MIN_AMOUNT: int = 50
TOWER_REFILL_FRACTION: float = 0.8
BUILDER_REPAIR_HITS_CAP: int = 10_000
UPGRADE_SURPLUS_ENERGY: int = 2000
IDLE_WORK_HEALTH_FRACTION: float = 0.5

# --- Persisted registries ---
ZONE_RECORD_TTL: int = 20_000
SCOUTED_ZONE_MAX_AGE: int = 10_000
SCOUT_REFRESH_AGE: int = 1500
MAX_EXPANSION_TARGETS: int = 3

# --- Duty cycles ---
DEFENDER_DUTY_CYCLE: int = 3
REMOTE_PLANNING_CYCLE: int = 20
MEMORY_PRUNE_CYCLE: int = 100
IDLE_RECHECK_INTERVAL: int = 10

# --- Movement cost model ---
TERRAIN_CACHE_TTL: int = 1000
COST_IMPASSABLE: int = 255
COST_ROAD: int = 1
COST_ALLY: int = 5
COST_CONSTRUCTION: int = 10
COST_RESOURCE_BUFFER: int = 10
COST_UPGRADE_FOCUS: int = 20
COST_HOSTILE_BASE: int = 20
HOSTILE_PENALTY_RADIUS: int = 3
CONGESTION_TRAFFIC_THRESHOLD: int = 100
CONGESTION_MAX_BASE_COST: int = 10
LABYRINTH_TRANSITION_THRESHOLD: float = 3.0
LABYRINTH_RAY_LENGTH: int = 10
FRICTION_SHARE_THRESHOLD: float = 0.4
OBSTRUCTION_SHARE_THRESHOLD: float = 0.3
OPEN_SHARE_CEILING: float = 0.1
HEAVY_LOAD_TRANSPORT_PARTS: int = 10
HEAVY_PLAIN_COST: int = 2
HEAVY_FRICTION_COST: int = 10
SHORT_TRIP_DISTANCE: int = 5
LONG_TRIP_DISTANCE: int = 20
CROSS_ZONE_REPLAN_CAP: int = 20
STEADY_ROLE_REPLAN_FLOOR: int = 15

# Profile defaults: (replan interval, plain cost, friction cost)
PROFILE_DEFAULTS = {
    "open": (30, 1, 10),
    "high_friction": (15, 1, 7),
    "obstructed": (20, 1, 10),
    "labyrinthine": (10, 1, 10),
    "mixed": (20, 1, 8),
}

# --- World simulation ---
SOURCE_CAPACITY: int = 3000
SOURCE_REGEN_TICKS: int = 300
CONTROLLER_PROGRESS_PER_LEVEL = {1: 200, 2: 45_000, 3: 135_000, 4: 405_000, 5: 1_215_000, 6: 3_645_000, 7: 10_935_000}
SPAWN_ENERGY_CAPACITY: int = 300
EXTENSION_ENERGY_CAPACITY: int = 50
TOWER_ENERGY_CAPACITY: int = 1000
CONTAINER_CAPACITY: int = 2000
STORAGE_CAPACITY: int = 1_000_000
RESERVATION_MAX_TICKS: int = 5000
DROPPED_DECAY_DIVISOR: int = 1000

# Environment generation bounds (seed-driven, within modest caps)
ENV_ZONE_GRID: tuple[int, int] = (2, 2)
ENV_SOURCES_PER_ZONE: tuple[int, int] = (1, 2)
ENV_SWAMP_BLOBS: tuple[int, int] = (2, 8)
ENV_WALL_BLOBS: tuple[int, int] = (3, 10)
ENV_BLOB_RADIUS: tuple[int, int] = (2, 6)
ENV_START_LEVEL: int = 2
ENV_STARTER_UNITS: int = 3
ENV_CONSTRUCTION_SITES: tuple[int, int] = (1, 4)
ENV_DAMAGED_ROADS: tuple[int, int] = (2, 6)
ENV_HOSTILE_CHANCE: float = 0.5

# --- Rounding / display ---
RESOURCE_DISPLAY_DECIMALS: int = 0
