"""Application-wide constants."""

APP_NAME = "coin-reader"
VERSION = "1.0.0"

# Six coins, six lines. Position 1 is the bottom line, position 6 the top.
SLOT_COUNT = 6
POSITIONS = tuple(range(1, SLOT_COUNT + 1))

SUPPORTED_IMAGE_FORMATS = (".png", ".jpg", ".jpeg", ".bmp", ".webp")
