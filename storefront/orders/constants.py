ORDER_NUMBER_PREFIX = "ORD"
BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
ORDER_NUMBER_RANDOM_LEN = 3

WEBHOOK_SUCCESS_STATUS = "SUCCESS"

COD_SUCCESS_MESSAGE = "Order placed successfully. Payment will be collected on delivery."
UPI_SUCCESS_MESSAGE = "Order created. Complete the payment to confirm it."
