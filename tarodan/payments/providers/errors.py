class ProviderError(Exception):
    """Raised when a payment provider cannot be reached or refuses a request"""
