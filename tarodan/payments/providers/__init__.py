from .errors import ProviderError
from .iyzico import IyzicoClient, IyzicoError
from .paytr import PayTRClient, PayTRError


def get_client(provider):
    if provider == 'iyzico':
        return IyzicoClient()
    if provider == 'paytr':
        return PayTRClient()
    raise ValueError(f"Unknown payment provider: {provider}")


__all__ = ['ProviderError', 'IyzicoClient', 'IyzicoError', 'PayTRClient', 'PayTRError', 'get_client']
