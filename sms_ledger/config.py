from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Dict

import yaml

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "pesaledger.db",
    "db_timeout": 5.0,
    "log_level": "INFO",
    "providers": {
        "MPESA": "sms_ledger.patterns.mpesa.MPESA_PATTERNS",
    },
    "sms_sources": {
        "csv": "sms_ledger.sources.csv_dump.CsvDumpSource",
    },
    "output_modules": {
        "csv": "sms_ledger.outputs.csv_output.CSVOutput",
    },
    "output_dir": "data",
    "wallets": [
        {"name": "M-Pesa", "sender": "MPESA", "balance": 0},
        {"name": "Pochi La Biashara", "sender": "MPESA", "balance": 0},
        {"name": "M-Shwari", "sender": "MPESA", "balance": 0},
        {"name": "Cash", "sender": "CASH", "balance": 0},
    ],
    "categories": {
        "Transport": ["Uber", "Matatu", "Boda Boda", "Fuel", "Parking"],
        "Food": ["Restaurant", "Groceries", "Fast Food", "Coffee", "Delivery"],
        "Bills": ["Electricity", "Water", "Internet", "Phone", "Rent", "Airtime", "Data Bundles"],
        "Fees": ["M-Pesa Charges", "Bank Charges", "ATM Fees", "Transfer Fees"],
        "Savings": ["Emergency Fund", "Investment", "Fixed Deposit"],
        "Income": ["Salary", "Freelance", "Business", "Investment Returns"],
        "Shopping": ["Clothes", "Electronics", "Home Items", "Personal Care"],
        "Entertainment": ["Movies", "Games", "Sports", "Music", "Events"],
    },
    "auto_categories": {
        "Airtime": ["airtime"],
        "Data Bundles": ["data bundles"],
    },
    "backfill_lookback_days": 7,
    "sync": {
        "url": None,
        "token": None,
        "timeout": 10.0,
    },
}


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def load_config(path: str | Path | None = None) -> Dict[str, object]:
    """Load a YAML config over the defaults; a missing file yields the defaults.

    ``PESALEDGER_DB`` overrides ``db_path``.
    """
    data: Dict[str, object] = {}
    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
    config = _merge_defaults(data, DEFAULT_CONFIG)
    env_db = os.getenv("PESALEDGER_DB")
    if env_db:
        config["db_path"] = env_db
    return config


def save_config(config: Dict[str, object], path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)
