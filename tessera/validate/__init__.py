"""tessera static validation: resolve queries against the schema registry."""
from tessera.validate.scope import QueryScope
from tessera.validate.validator import QueryValidator

__all__ = ["QueryScope", "QueryValidator"]
