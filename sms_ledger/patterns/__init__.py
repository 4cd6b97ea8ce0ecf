# sms_ledger/patterns/__init__.py
from importlib import import_module


def get_patterns(sender_name, config):
    """Resolve the pattern table configured for ``sender_name``."""
    providers = config.get('providers', {})
    table_path = next(
        (path for label, path in providers.items() if label.upper() == sender_name.upper()),
        None,
    )
    if table_path is None:
        return []
    module_name, attr = table_path.rsplit('.', 1)
    mod = import_module(module_name)
    return list(getattr(mod, attr))
