"""Fixtures compartilhadas dos testes do Fluxo Board."""

import pytest

from apps.board.sync.collection import Item
from apps.board.sync.coordinator import MoveCoordinator
from apps.board.sync.conf import SyncConfig
from apps.board.sync.positions import PositionAllocator
from apps.board.sync.store import BoardStore
from tests.fakes import FakeTaskApi


@pytest.fixture
def allocator():
    return PositionAllocator()


@pytest.fixture
def store(allocator):
    """
    Board com três listas:
        L1: A@1.0, B@2.0, C@3.0
        L2: D@1.0
        L3: vazia
    """
    board = BoardStore('B1', allocator)
    board.load_parent('L1', [Item('A', 'L1', 1.0), Item('B', 'L1', 2.0), Item('C', 'L1', 3.0)])
    board.load_parent('L2', [Item('D', 'L2', 1.0)])
    board.load_parent('L3', [])
    return board


@pytest.fixture
def api(allocator):
    """Servidor simulado com o mesmo conteúdo do store"""
    fake = FakeTaskApi('B1', allocator)
    fake.add_list('L1', ('A', 1.0), ('B', 2.0), ('C', 3.0))
    fake.add_list('L2', ('D', 1.0))
    fake.add_list('L3')
    return fake


@pytest.fixture
def config():
    return SyncConfig(move_timeout=0.5, network_retries=1)


@pytest.fixture
def coordinator(store, api, config):
    return MoveCoordinator(store, api, config=config)
