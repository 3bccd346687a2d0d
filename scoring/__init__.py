# scoring -- client side of the external ML scoring service
#
# Modules:
#   features   -- customer -> request payload mapping (flags, numeric defaults)
#   gateway    -- async HTTP client: single / batch scoring, health, model info
