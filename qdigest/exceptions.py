"""Custom exceptions for the q-digest package."""


class IncompatibleCompressionFactorError(ValueError):
    """
    Raised when two digests with different compression factors are combined.

    A union is only meaningful when both inputs were built with the same
    error/size trade-off, so the factors must match exactly.
    """

    def __init__(self, left: float, right: float):
        """
        Initialize IncompatibleCompressionFactorError.

        Args:
            left: Compression factor of the left-hand digest
            right: Compression factor of the right-hand digest
        """
        self.left = left
        self.right = right
        self.message = "Compression factors must be the same"
        super().__init__(self.message)

    def __str__(self):
        return f"{self.message}: left is {self.left}, right is {self.right}"
