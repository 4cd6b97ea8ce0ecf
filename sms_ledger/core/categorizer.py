# sms_ledger/core/categorizer.py
def categorize(tx, categories_map):
    """Return the category item name whose keywords appear in ``tx``."""
    text = f"{tx.description} {getattr(tx, 'counterparty', '')}".lower()
    for item, keywords in categories_map.items():
        for kw in keywords:
            if kw.lower() in text:
                return item
    return None


def resolve_item_id(item_name, items):
    """Match ``item_name`` against CategoryItem rows, ignoring case."""
    if not item_name:
        return None
    wanted = item_name.lower()
    return next((item.id for item in items if item.name.lower() == wanted), None)
