from typing import List


class BalancingDataError(Exception):
    """Raised when an allocation mode needs data that is missing for some tickers"""

    def __init__(self, mode: str, missing_data: List[str], affected_tickers: List[str]):
        self.mode = mode
        self.missing_data = list(missing_data)
        self.affected_tickers = list(affected_tickers)
        super().__init__(
            f"Balancing halted: {mode} mode requires {', '.join(self.missing_data)} "
            f"which is missing for tickers: {', '.join(self.affected_tickers)}"
        )
