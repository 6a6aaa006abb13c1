from .azure import ARM_SCOPE, AzureAuthProvider

__all__ = [
    "ARM_SCOPE",
    "AzureAuthProvider",
]
