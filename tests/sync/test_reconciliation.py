"""Testes da ReconciliationPolicy."""

from datetime import datetime, timezone

import pytest

from apps.board.sync.api import ServerTask
from apps.board.sync.collection import Item
from apps.board.sync.coordinator import PendingMove
from apps.board.sync.errors import ExternalError, NetworkFailure, ValidationError
from apps.board.sync.reconciliation import FailureAction, Reconciliation, ReconciliationPolicy
from tests.fakes import ids


@pytest.fixture
def policy():
    return ReconciliationPolicy(retries=1)


def pending_for(store, item_id, intent_id='i1', previous_parent='L1', previous_position=1.0):
    current = store.locate(item_id)
    return PendingMove(
        intent_id=intent_id,
        item_id=item_id,
        optimistic_position=current.position,
        optimistic_parent_id=current.parent_id,
        issued_at=datetime.now(timezone.utc),
        previous_parent_id=previous_parent,
        previous_position=previous_position,
    )


class TestDecide:
    """Classificação da resposta do servidor."""

    def test_confirm_when_server_agrees(self, store, policy):
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')

        decision = policy.decide(pending, pending, ServerTask('A', 'L2', 2.0), store.locate('A'))

        assert decision.action is Reconciliation.CONFIRM

    def test_accept_server_on_position_difference(self, store, policy):
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')

        decision = policy.decide(pending, pending, ServerTask('A', 'L2', 10.0), store.locate('A'))

        assert decision.action is Reconciliation.ACCEPT_SERVER
        assert decision.position == 10.0
        assert decision.notice is None

    def test_surface_conflict_on_parent_difference(self, store, policy):
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')

        decision = policy.decide(pending, pending, ServerTask('A', 'L3', 4.0), store.locate('A'))

        assert decision.action is Reconciliation.SURFACE_CONFLICT
        assert decision.parent_id == 'L3'
        assert decision.notice.level == 'warning'
        assert 'outra lista' in decision.notice.message

    def test_ignore_superseded_response(self, store, policy):
        store.move_item('A', 'L2', 1)
        old = pending_for(store, 'A', intent_id='i1')
        latest = pending_for(store, 'A', intent_id='i2')

        decision = policy.decide(old, latest, ServerTask('A', 'L2', 2.0))

        assert decision.action is Reconciliation.IGNORE

    def test_ignore_without_pending(self, policy):
        decision = policy.decide(None, None, ServerTask('A', 'L2', 2.0))
        assert decision.action is Reconciliation.IGNORE

    def test_ignore_response_for_other_item(self, store, policy):
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')

        decision = policy.decide(pending, pending, ServerTask('B', 'L2', 2.0))

        assert decision.action is Reconciliation.IGNORE

    def test_falls_back_to_optimistic_values(self, store, policy):
        """Sem o item atual, compara com o que o PendingMove registrou."""
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')

        decision = policy.decide(pending, pending, ServerTask('A', 'L2', 2.0), None)

        assert decision.action is Reconciliation.CONFIRM


class TestApply:
    """Efeito das decisões no store."""

    def test_accept_server_reorders(self, store, policy):
        """Posição do servidor reordena a lista afetada."""
        store.move_item('A', 'L2', 0)
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L2', 5.0)

        decision = policy.decide(pending, pending, response, store.locate('A'))
        item = policy.apply(store, decision, response)

        assert item.position == 5.0
        assert ids(store.get_snapshot('L2')) == ['D', 'A']

    def test_accept_server_keeps_payload_when_response_has_none(self, store, policy):
        store.place_item(Item('A', 'L1', 1.0, {'title': 'Alfa'}), 'L1')
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L2', 9.0)

        policy.apply(store, policy.decide(pending, pending, response, store.locate('A')), response)

        assert store.locate('A').payload == {'title': 'Alfa'}

    def test_confirm_changes_nothing(self, store, policy):
        store.move_item('A', 'L2', 1)
        version = store.version
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L2', 2.0)

        result = policy.apply(store, policy.decide(pending, pending, response, store.locate('A')), response)

        assert result is None
        assert store.version == version

    def test_conflict_places_item_in_server_parent(self, store, policy):
        received = []
        store.subscribe(received.append)
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L3', 4.0)

        decision = policy.decide(pending, pending, response, store.locate('A'))
        policy.apply(store, decision, response)

        assert store.parent_of('A') == 'L3'
        assert ids(store.get_snapshot('L2')) == ['D']
        assert received[-1].notice is decision.notice

    def test_conflict_to_unknown_parent_removes_item(self, store, policy):
        """Servidor levou a tarefa para lista fora deste board."""
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L99', 1.0)

        policy.apply(store, policy.decide(pending, pending, response, store.locate('A')), response)

        assert store.locate('A') is None

    def test_correction_into_dropped_parent_removes_item(self, store, policy):
        """Lista de destino excluída antes da resposta."""
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')
        current = store.locate('A')
        store.remove_parent('L2')
        response = ServerTask('A', 'L2', 9.0)

        decision = policy.decide(pending, pending, response, current)
        assert decision.action is Reconciliation.ACCEPT_SERVER
        assert policy.apply(store, decision, response) is None
        assert store.locate('A') is None

    def test_duplicate_response_is_idempotent(self, store, policy):
        """Aplicar a mesma resposta duas vezes não muda nada na segunda."""
        store.move_item('A', 'L2', 1)
        pending = pending_for(store, 'A')
        response = ServerTask('A', 'L2', 7.5)

        policy.apply(store, policy.decide(pending, pending, response, store.locate('A')), response)
        snapshot, version = store.get_snapshot('L2'), store.version

        second = policy.decide(pending, pending, response, store.locate('A'))
        policy.apply(store, second, response)

        assert second.action is Reconciliation.CONFIRM
        assert store.get_snapshot('L2') == snapshot
        assert store.version == version


class TestFailures:
    """Classificação de falhas."""

    def test_network_failure_retried_once(self, policy):
        error = NetworkFailure('offline')
        assert policy.classify_failure(error, 1) is FailureAction.RETRY
        assert policy.classify_failure(error, 2) is FailureAction.ROLLBACK

    def test_conflict(self, policy):
        error = ExternalError('stale', 409, 'STALE_PARENT')
        assert policy.classify_failure(error, 1) is FailureAction.CONFLICT

    @pytest.mark.parametrize('status', [400, 401, 403, 404, 422, 500])
    def test_other_external_errors_roll_back(self, policy, status):
        assert policy.classify_failure(ExternalError('x', status), 1) is FailureAction.ROLLBACK

    def test_validation_error_rolls_back(self, policy):
        assert policy.classify_failure(ValidationError('x'), 1) is FailureAction.ROLLBACK

    def test_conflict_task_from_details(self, policy):
        error = ExternalError('stale', 409, 'STALE_PARENT',
                              {'task': {'id': 'A', 'list_id': 'L3', 'position': 2, 'title': 'Alfa'}})

        task = policy.conflict_task(error)

        assert task == ServerTask('A', 'L3', 2.0, {'title': 'Alfa'})

    def test_conflict_task_missing_or_malformed(self, policy):
        assert policy.conflict_task(ExternalError('stale', 409)) is None
        assert policy.conflict_task(ExternalError('stale', 409, details={'task': {'id': 'A'}})) is None
