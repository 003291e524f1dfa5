from abc import ABC, abstractmethod


class QuantileEstimator(ABC):
    @abstractmethod
    def offer(self, value: int) -> None:
        pass

    @abstractmethod
    def get_quantile(self, q: float) -> int:
        pass
