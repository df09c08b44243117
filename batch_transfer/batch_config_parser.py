"""
Batch Config Parser

Loads the batch YAML file (rpc_url + wallets) and converts transfer
spreadsheets into that YAML format.

Example batch file:

    rpc_url: https://api.devnet.solana.com
    max_concurrency: 16
    polling:
      interval_seconds: 2
      max_attempts: 10
    wallets:
      - from_keypair: ~/.config/solana/id.json
        to_address: 9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin
        amount_sol: "0.25"
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import yaml
from loguru import logger

from .confirmation_poller import PollingPolicy
from .transfer_models import TransferRequest


RPC_URL_ENV = "BATCH_TRANSFER_RPC_URL"
REQUIRED_ENTRY_FIELDS = ('from_keypair', 'to_address', 'amount_sol')


class BatchConfigError(Exception):
    """Batch file missing or malformed; aborts the run before any RPC call"""


@dataclass
class BatchConfig:
    """Loaded batch specification"""
    rpc_url: str
    wallets: List[TransferRequest]
    polling: PollingPolicy = field(default_factory=PollingPolicy)
    max_concurrency: Optional[int] = None
    source: Optional[str] = None


def _parse_entry(index: int, entry) -> TransferRequest:
    if not isinstance(entry, dict):
        raise BatchConfigError(f"wallets[{index}] must be a mapping, got {type(entry).__name__}")

    missing = [k for k in REQUIRED_ENTRY_FIELDS if entry.get(k) is None]
    if missing:
        raise BatchConfigError(f"wallets[{index}] missing fields: {', '.join(missing)}")

    try:
        return TransferRequest(
            from_keypair=str(entry['from_keypair']),
            to_address=str(entry['to_address']),
            amount_sol=entry['amount_sol'],
            label=str(entry['label']) if entry.get('label') else f"#{index}"
        )
    except ValueError as e:
        raise BatchConfigError(f"wallets[{index}]: {e}")


def _parse_polling(raw) -> PollingPolicy:
    if raw is None:
        return PollingPolicy()
    if not isinstance(raw, dict):
        raise BatchConfigError("polling must be a mapping")

    defaults = PollingPolicy()
    try:
        return PollingPolicy(
            interval_seconds=float(raw.get('interval_seconds', defaults.interval_seconds)),
            max_attempts=int(raw.get('max_attempts', defaults.max_attempts))
        )
    except (TypeError, ValueError) as e:
        raise BatchConfigError(f"Invalid polling settings: {e}")


def parse_batch_config(config: Dict, source: Optional[str] = None) -> BatchConfig:
    """
    Validate a raw config mapping

    Args:
        config: Mapping loaded from YAML
        source: Where it came from, for error messages

    Returns:
        BatchConfig
    """
    if not isinstance(config, dict):
        raise BatchConfigError(f"Batch config must be a mapping (source: {source or 'inline'})")

    rpc_url = os.environ.get(RPC_URL_ENV) or config.get('rpc_url')
    if not rpc_url:
        raise BatchConfigError("rpc_url is required")

    wallets = config.get('wallets')
    if not isinstance(wallets, list):
        raise BatchConfigError("wallets must be a list of transfer entries")

    max_concurrency = config.get('max_concurrency')
    if max_concurrency is not None:
        try:
            max_concurrency = int(max_concurrency)
        except (TypeError, ValueError):
            raise BatchConfigError(f"max_concurrency must be an integer, got {max_concurrency!r}")
        if max_concurrency < 1:
            raise BatchConfigError("max_concurrency must be at least 1")

    return BatchConfig(
        rpc_url=str(rpc_url),
        wallets=[_parse_entry(i, entry) for i, entry in enumerate(wallets)],
        polling=_parse_polling(config.get('polling')),
        max_concurrency=max_concurrency,
        source=source
    )


def load_batch_config(config_path: str = "config.yaml") -> BatchConfig:
    """
    Load and validate the batch YAML file

    Args:
        config_path: Path to batch file

    Returns:
        BatchConfig

    Raises:
        BatchConfigError: file missing, unreadable or malformed
    """
    path = Path(config_path)
    if not path.exists():
        raise BatchConfigError(f"Batch config not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise BatchConfigError(f"Cannot read batch config {path}: {e}")

    config = parse_batch_config(raw, source=str(path))
    logger.info(f"Loaded {len(config.wallets)} transfers from {path}")
    return config


class TransferSheetParser:
    """
    Convert a transfer spreadsheet into a batch YAML file

    Features:
    - Reads .xlsx/.xls (via openpyxl) or .csv
    - Case-insensitive column headers
    - Skips blank rows
    - Keeps amounts as strings so YAML never rounds them
    """

    COLUMN_ALIASES = {
        'from_keypair': 'from_keypair',
        'keypair': 'from_keypair',
        'from': 'from_keypair',
        'to_address': 'to_address',
        'address': 'to_address',
        'to': 'to_address',
        'amount_sol': 'amount_sol',
        'amount': 'amount_sol',
        'sol': 'amount_sol',
        'label': 'label',
    }

    def __init__(self, sheet_path: str, sheet_name=0):
        """
        Initialize parser

        Args:
            sheet_path: Path to .xlsx/.xls/.csv file
            sheet_name: Excel sheet name or index (ignored for CSV)
        """
        self.sheet_path = Path(sheet_path)
        self.sheet_name = sheet_name

    def _read_frame(self) -> pd.DataFrame:
        if not self.sheet_path.exists():
            raise BatchConfigError(f"Transfer sheet not found: {self.sheet_path}")

        try:
            if self.sheet_path.suffix.lower() == '.csv':
                return pd.read_csv(self.sheet_path, dtype=str)
            return pd.read_excel(self.sheet_path, sheet_name=self.sheet_name, dtype=str)
        except (OSError, ValueError) as e:
            raise BatchConfigError(f"Cannot read transfer sheet {self.sheet_path}: {e}")

    def parse_entries(self) -> List[Dict[str, str]]:
        """
        Read wallet entries from the sheet

        Returns:
            List of wallet entry dicts (all values as strings)
        """
        df = self._read_frame()
        df = df.rename(columns=lambda c: self.COLUMN_ALIASES.get(str(c).strip().lower(), str(c)))

        missing = [c for c in REQUIRED_ENTRY_FIELDS if c not in df.columns]
        if missing:
            raise BatchConfigError(f"Transfer sheet missing columns: {', '.join(missing)}")

        entries = []
        for i in range(len(df)):
            row = df.iloc[i]
            if all(pd.isna(row[c]) or not str(row[c]).strip() for c in REQUIRED_ENTRY_FIELDS):
                continue

            entry = {c: str(row[c]).strip() if pd.notna(row[c]) else None for c in REQUIRED_ENTRY_FIELDS}
            if 'label' in df.columns and pd.notna(row['label']) and str(row['label']).strip():
                entry['label'] = str(row['label']).strip()
            entries.append(entry)

        logger.info(f"Parsed {len(entries)} transfers from {self.sheet_path}")
        return entries

    def generate_yaml(
        self,
        output_path: str = "config.yaml",
        rpc_url: str = "https://api.mainnet-beta.solana.com"
    ) -> Path:
        """
        Write a batch YAML file from the sheet

        Entries are validated with the same rules as load_batch_config
        before anything is written.

        Args:
            output_path: Output file path
            rpc_url: RPC endpoint to put in the file

        Returns:
            Path written
        """
        config = {
            'rpc_url': rpc_url,
            'wallets': self.parse_entries(),
            'metadata': {
                'generated_at': datetime.now().isoformat(),
                'source': str(self.sheet_path),
            }
        }

        parse_batch_config(config, source=str(self.sheet_path))

        output_path = Path(output_path)
        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

        logger.info(f"✓ Generated {output_path}")
        return output_path
