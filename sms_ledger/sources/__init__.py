# sms_ledger/sources/__init__.py
from importlib import import_module


def get_source(name, config):
    source_path = config['sms_sources'][name]
    module_name, cls_name = source_path.rsplit('.', 1)
    mod = import_module(module_name)
    return getattr(mod, cls_name)()
