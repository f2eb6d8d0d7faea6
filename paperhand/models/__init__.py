from paperhand.models.base import Base
from paperhand.models.setting import SettingRow
from paperhand.models.token import PriceHistoryRow, TrackedTokenRow
from paperhand.models.trade import TradeRow

__all__ = [
    "Base",
    "TrackedTokenRow",
    "PriceHistoryRow",
    "TradeRow",
    "SettingRow",
]
