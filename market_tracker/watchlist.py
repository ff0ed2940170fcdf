##########################################################################################
#
# Script name: watchlist.py
#
# Description: Set of watched coin ids persisted to YAML.
#
##########################################################################################

import logging
import os

import yaml

from .config import _read_yaml
from .models import CoinSnapshot


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


class Watchlist:
    def __init__(self, ids=None):
        self._ids: set[int] = set(ids or ())

    @property
    def ids(self) -> list[int]:
        return sorted(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def contains(self, coin_id: int) -> bool:
        return coin_id in self._ids

    def add(self, coin_id: int) -> bool:
        if coin_id in self._ids:
            return False
        self._ids.add(coin_id)
        return True

    def remove(self, coin_id: int) -> bool:
        if coin_id not in self._ids:
            return False
        self._ids.discard(coin_id)
        return True

    def toggle(self, coin_id: int) -> bool:
        '''Flip membership and return whether the coin is now watched.'''
        if coin_id in self._ids:
            self._ids.discard(coin_id)
            return False
        self._ids.add(coin_id)
        return True

    def watched(self, snapshots: list[CoinSnapshot]) -> list[CoinSnapshot]:
        return [snapshot for snapshot in snapshots if snapshot.id in self._ids]


# ****************************************************************************************
# Functions
# ****************************************************************************************


def load_watchlist(path: str) -> Watchlist:
    if not os.path.exists(path):
        log.warning('Watchlist file %s not found. Starting empty.', path)
        return Watchlist()
    payload = _read_yaml(path)
    rows = payload.get('watchlist') or []
    if not isinstance(rows, list):
        raise ValueError('watchlist must be a list')
    ids = []
    for idx, row in enumerate(rows):
        if isinstance(row, bool):
            raise ValueError(f'watchlist[{idx}] must be a coin id')
        try:
            ids.append(int(row))
        except (TypeError, ValueError) as exc:
            raise ValueError(f'watchlist[{idx}] must be a coin id') from exc
    return Watchlist(ids)


def save_watchlist(path: str, watchlist: Watchlist) -> None:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as handle:
        yaml.safe_dump({'watchlist': watchlist.ids}, handle, default_flow_style=False)
    log.debug('Saved %s watched coin(s) to %s.', len(watchlist), path)
