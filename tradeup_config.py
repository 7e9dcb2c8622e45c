"""Runtime configuration for the trade-up simulation & allocation engine."""

# Number of inputs consumed by one trade-up contract.
RECIPE_SIZE = 10

# Output condition values are rounded to the listing granularity of the price source.
CONDITION_DECIMALS = 9

# Highest tier that can appear as an input is MAX_TIER - 1 (Covert cannot be traded up).
MAX_TIER = 5

# Two condition values closer than this are the same item.
EQUALITY_TOLERANCE = 1e-7

# ALLOCATION SEARCH
SWAP_EPSILON = 0.01       # minimum EV gain (currency units) for a swap to be accepted
MAX_SWAP_ATTEMPTS = 500   # hard cap on attempted swaps per allocation

# PRICE INTERPOLATION
# Blend weight towards the next-better condition tier, per condition tier.
# Factory New has no better tier, so it only ever receives the flat premium.
TIER_ANCHOR_RATIOS = {
    'Factory New': 0.0,
    'Minimal Wear': 0.35,
    'Field-Tested': 0.25,
    'Well-Worn': 0.30,
    'Battle-Scarred': 0.15,
}
INTERPOLATION_CAP = 0.95  # interpolated price never exceeds this share of the better tier
FLAT_PREMIUM = 0.05       # max premium when no better-tier listing exists

# DATA SOURCES
CACHE_MAX_AGE_HOURS = 24
DOWNLOAD_TIMEOUT_SECONDS = 30
