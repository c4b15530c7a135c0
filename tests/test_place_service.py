"""
Tests du service de places : bornes, paiement, exclusivité et déplacement.
"""
import pytest

from errors import NotFound, Conflict, Forbidden, InvalidArgument
from models import PlaceAllocation
from repositories.participant_repository import ParticipantRepository
from services.place_service import PlaceService


@pytest.fixture
def service(app):
    return PlaceService()


@pytest.fixture
def je_with_zone(factory):
    """JE owning zone "B" with three fully paid participants."""
    zone = factory.zone('B')
    je = factory.je()
    factory.own(zone, je)
    members = [factory.participant(je=je, paid=True) for _ in range(3)]
    return je, zone, members


def test_reserve_place_builds_place_name(service, je_with_zone):
    _, _, members = je_with_zone
    result = service.reserve_place(members[0].id, 2)
    assert result['place_name'] == 'B_2'


def test_place_taken_by_another_participant(service, je_with_zone):
    _, _, members = je_with_zone
    service.reserve_place(members[0].id, 1)
    with pytest.raises(Conflict, match='B_1 is already taken'):
        service.reserve_place(members[1].id, 1)


def test_reserving_same_place_twice_is_a_noop(service, je_with_zone):
    _, _, members = je_with_zone
    service.reserve_place(members[0].id, 1)
    result = service.reserve_place(members[0].id, 1)
    assert result['place_name'] == 'B_1'
    assert PlaceAllocation.query.count() == 1


def test_moving_frees_the_old_place(service, je_with_zone):
    _, _, members = je_with_zone
    service.reserve_place(members[0].id, 1)
    service.reserve_place(members[0].id, 3)

    assert PlaceAllocation.query.count() == 1
    # Old place is free again for someone else
    result = service.reserve_place(members[1].id, 1)
    assert result['place_name'] == 'B_1'


@pytest.mark.parametrize('number', [0, 4, -1])
def test_place_number_out_of_bounds(service, je_with_zone, number):
    _, _, members = je_with_zone
    with pytest.raises(InvalidArgument, match='between 1 and 3'):
        service.reserve_place(members[0].id, number)


def test_last_paid_number_is_valid(service, je_with_zone):
    _, _, members = je_with_zone
    assert service.reserve_place(members[2].id, 3)['place_name'] == 'B_3'


def test_no_zone_is_forbidden(service, factory):
    je = factory.je()
    participant = factory.participant(je=je, paid=True)
    with pytest.raises(Forbidden, match='has not reserved a zone'):
        service.reserve_place(participant.id, 1)


def test_no_je_is_forbidden(service, factory):
    participant = factory.participant(paid=True)
    with pytest.raises(Forbidden):
        service.reserve_place(participant.id, 1)


def test_unpaid_participant_is_forbidden(service, je_with_zone, factory):
    je, _, _ = je_with_zone
    unpaid = factory.participant(je=je)
    with pytest.raises(Forbidden, match='must pay'):
        service.reserve_place(unpaid.id, 1)


def test_first_part_payment_is_enough_but_not_counted(service, je_with_zone, factory):
    je, _, _ = je_with_zone
    partial = factory.participant(je=je, first_part=True)
    # Bound is still the three fully paid members
    assert service.reserve_place(partial.id, 3)['place_name'] == 'B_3'
    with pytest.raises(InvalidArgument):
        service.reserve_place(partial.id, 4)


def test_unknown_participant(service):
    with pytest.raises(NotFound):
        service.reserve_place(12345, 1)


def test_at_most_one_holder_per_place(service, je_with_zone):
    _, _, members = je_with_zone
    for member in members:
        for number in (1, 2, 3):
            try:
                service.reserve_place(member.id, number)
            except Conflict:
                pass
    allocations = PlaceAllocation.query.all()
    assert len({(a.zone_id, a.number) for a in allocations}) == len(allocations)


def test_reserve_place_for_user(service, factory):
    zone = factory.zone('F')
    je = factory.je()
    factory.own(zone, je)
    participant = factory.participant(je=je, paid=True, with_user=True)
    assert service.reserve_place_for_user(participant.user_id, 1)['place_name'] == 'F_1'
    with pytest.raises(NotFound):
        service.reserve_place_for_user(factory.user().id, 1)


def test_release_place(service, je_with_zone):
    _, _, members = je_with_zone
    service.reserve_place(members[0].id, 1)
    assert service.release_place(members[0].id)['place_name'] is None
    assert service.release_place(members[0].id)['place_name'] is None


# ---------------------------------------------------------------------------
# stats & payment
# ---------------------------------------------------------------------------

def test_je_place_stats(service, je_with_zone, factory):
    je, _, members = je_with_zone
    factory.participant(je=je)  # unpaid, not counted
    service.reserve_place(members[0].id, 3)
    service.reserve_place(members[1].id, 1)

    stats = service.get_je_place_stats(je.id)

    assert stats == {
        'has_je': True,
        'je_id': je.id,
        'reserved_zone': 'B',
        'paid_count': 3,
        'reserved_places': ['B_1', 'B_3'],
    }


def test_participant_place_stats_without_je(service, factory):
    participant = factory.participant(with_user=True)
    assert service.get_participant_place_stats(participant.user_id) == {'has_je': False}


def test_participant_place_stats_without_zone(service, factory):
    je = factory.je()
    participant = factory.participant(je=je, with_user=True)
    stats = service.get_participant_place_stats(participant.user_id)
    assert stats['has_je'] is True
    assert stats['reserved_zone'] is None


def test_record_payment_changes_bound(service, je_with_zone, factory):
    je, _, _ = je_with_zone
    newcomer = factory.participant(je=je)
    result = service.record_payment(newcomer.id, 'paid')
    assert result['payment_status'] == 'paid'
    assert service.reserve_place(newcomer.id, 4)['place_name'] == 'B_4'


def test_record_payment_first_part_and_reset(service, factory):
    participant = factory.participant()
    assert service.record_payment(participant.id, 'first_part')['payment_status'] == 'first part paid'
    assert service.record_payment(participant.id, 'unpaid')['payment_status'] == 'unpaid'
    with pytest.raises(InvalidArgument):
        service.record_payment(participant.id, 'refunded')


def test_unpaid_participant_loses_their_place(service, je_with_zone):
    je, _, members = je_with_zone
    service.reserve_place(members[1].id, 2)

    result = service.record_payment(members[1].id, 'unpaid')

    assert result['payment_status'] == 'unpaid'
    assert result['place_name'] is None
    assert service.get_je_place_stats(je.id)['reserved_places'] == []


def test_downgrade_releases_places_above_new_paid_count(service, je_with_zone):
    je, _, members = je_with_zone
    service.reserve_place(members[0].id, 3)
    service.reserve_place(members[1].id, 1)

    # members[1] keeps a first payment and place B_1; B_3 is now out of bounds
    service.record_payment(members[1].id, 'first_part')

    stats = service.get_je_place_stats(je.id)
    assert stats['paid_count'] == 2
    assert stats['reserved_places'] == ['B_1']


def test_upgrade_keeps_every_place(service, je_with_zone, factory):
    je, _, members = je_with_zone
    service.reserve_place(members[0].id, 3)
    newcomer = factory.participant(je=je)
    service.record_payment(newcomer.id, 'paid')
    assert service.get_je_place_stats(je.id)['reserved_places'] == ['B_3']


def test_integral_float_place_number(service, je_with_zone):
    _, _, members = je_with_zone
    assert service.reserve_place(members[0].id, 2.0)['place_name'] == 'B_2'
    with pytest.raises(InvalidArgument, match='integer'):
        service.reserve_place(members[0].id, 1.5)


# ---------------------------------------------------------------------------
# store-level conflicts
# ---------------------------------------------------------------------------

class StaleAllocationRepository(ParticipantRepository):
    """Reports every place as free, as a read done before a concurrent insert would."""

    @staticmethod
    def find_allocation(zone_id, number):
        return None


def test_place_taken_between_check_and_commit(je_with_zone):
    _, _, members = je_with_zone
    service = PlaceService(participant_repository=StaleAllocationRepository())
    service.reserve_place(members[0].id, 1)

    with pytest.raises(Conflict, match='B_1 is already taken'):
        service.reserve_place(members[1].id, 1)

    holders = [(a.participant_id, a.number) for a in PlaceAllocation.query.all()]
    assert holders == [(members[0].id, 1)]


def test_failed_move_keeps_previous_place(je_with_zone):
    _, _, members = je_with_zone
    service = PlaceService(participant_repository=StaleAllocationRepository())
    service.reserve_place(members[0].id, 1)
    service.reserve_place(members[1].id, 2)

    with pytest.raises(Conflict):
        service.reserve_place(members[1].id, 1)

    numbers = {a.participant_id: a.number for a in PlaceAllocation.query.all()}
    assert numbers == {members[0].id: 1, members[1].id: 2}
