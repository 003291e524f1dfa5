import os

from qdigest.constants import COMPRESSION_FACTOR_ENV, DEFAULT_COMPRESSION_FACTOR
from qdigest.core.quantile.q_digest import QDigest
from qdigest.core.quantile.quantile_estimator import QuantileEstimator
from qdigest.exceptions import IncompatibleCompressionFactorError

__all__ = [
    "IncompatibleCompressionFactorError",
    "QDigest",
    "QuantileEstimator",
    "get_digest",
]


def get_digest(compression_factor: float | None = None) -> QDigest:
    """
    Create an empty q-digest.

    :param compression_factor: Error parameter k > 0. When omitted it is read from
                               the QDIGEST_COMPRESSION_FACTOR environment variable,
                               falling back to DEFAULT_COMPRESSION_FACTOR.
    :return: A new, empty QDigest
    :raises ValueError: If the configured value is not a number or not positive
    """
    if compression_factor is None:
        raw_value = os.environ.get(COMPRESSION_FACTOR_ENV, str(DEFAULT_COMPRESSION_FACTOR))
        try:
            compression_factor = float(raw_value)
        except ValueError:
            raise ValueError(
                f"{COMPRESSION_FACTOR_ENV}={raw_value} is not a valid compression factor."
            )
    if not compression_factor > 0:
        raise ValueError(
            f"Compression factor must be positive, got {compression_factor}."
        )
    return QDigest(compression_factor=compression_factor)
