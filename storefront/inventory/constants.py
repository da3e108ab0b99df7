import enum

RESERVATION_KEY_PREFIX = "stock:reservation"
SNAPSHOT_KEY_PREFIX = "order:reservation"


class StockStatus(str, enum.Enum):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK_WARNING = "LOW_STOCK_WARNING"
    QUANTITY_EXCEEDED = "QUANTITY_EXCEEDED"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class StockAction(str, enum.Enum):
    PROCEED = "proceed"
    REDUCE = "reduce_quantity"
    REMOVE = "remove"
