# configuration
COMPRESSION_FACTOR_ENV = "QDIGEST_COMPRESSION_FACTOR"
DEFAULT_COMPRESSION_FACTOR = 100.0

# the retained-node bound is NODE_BOUND_MULTIPLIER * compression factor
NODE_BOUND_MULTIPLIER = 3
