import threading
from typing import List

import pytest
from common.errors import UsageLimitReached
from django.db import close_old_connections, connection
from promos.models import PromoCode
from promos.services import redeem_promo
from promos.tests.factories import PromoCodeFactory


def _redeem_worker(barrier: threading.Barrier, promo_id: int, wins: List[int], losses: List[Exception]):
    close_old_connections()
    barrier.wait()
    try:
        redeem_promo(promo_id=promo_id)
        wins.append(promo_id)
    except UsageLimitReached as exc:
        losses.append(exc)
    finally:
        close_old_connections()


@pytest.mark.django_db(transaction=True)
def test_threaded_redemptions_of_last_use_have_one_winner():
    if connection.vendor == "sqlite":
        pytest.skip("SQLite lacks real concurrent transactions; run with DATABASE_ENGINE=postgres.")
    promo = PromoCodeFactory(max_uses=1)

    workers = 6
    barrier = threading.Barrier(workers)
    wins: List[int] = []
    losses: List[Exception] = []
    threads = [
        threading.Thread(target=_redeem_worker, args=(barrier, promo.id, wins, losses)) for _ in range(workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(losses) == workers - 1
    assert PromoCode.objects.get(pk=promo.pk).use_count == 1
