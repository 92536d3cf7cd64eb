# backend/tests/modules/orders/test_order_number_service.py

import threading
from datetime import date

import pytest

from modules.orders.models.order_models import OrderNumberCounter
from modules.orders.services.order_number_service import OrderNumberAllocator


@pytest.mark.unit
class TestFormatNumber:

    def test_zero_padded(self):
        assert OrderNumberAllocator.format_number(date(2024, 3, 9), 7) == "20240309-0007"

    def test_widens_past_four_digits(self):
        assert OrderNumberAllocator.format_number(date(2024, 3, 9), 10000) == "20240309-10000"


@pytest.mark.integration
class TestAllocate:

    def test_sequence_starts_at_one_and_increments(self, db_session):
        allocator = OrderNumberAllocator(db_session)
        day = date(2024, 1, 15)

        numbers = [allocator.allocate(1, day) for _ in range(3)]
        db_session.commit()

        assert numbers == ["20240115-0001", "20240115-0002", "20240115-0003"]

    def test_sequences_are_per_business_and_per_day(self, db_session):
        allocator = OrderNumberAllocator(db_session)

        assert allocator.allocate(1, date(2024, 1, 15)) == "20240115-0001"
        assert allocator.allocate(2, date(2024, 1, 15)) == "20240115-0001"
        assert allocator.allocate(1, date(2024, 1, 16)) == "20240116-0001"
        assert allocator.allocate(1, date(2024, 1, 15)) == "20240115-0002"
        db_session.commit()

    def test_rolled_back_allocation_is_not_persisted(self, db_session):
        allocator = OrderNumberAllocator(db_session)
        day = date(2024, 1, 15)
        allocator.allocate(1, day)
        db_session.commit()

        allocator.allocate(1, day)
        db_session.rollback()

        assert allocator.allocate(1, day) == "20240115-0002"
        db_session.commit()

    def test_concurrent_allocation_yields_distinct_numbers(self, session_factory):
        workers = 8
        day = date(2024, 2, 1)
        barrier = threading.Barrier(workers)
        results, errors = [], []
        lock = threading.Lock()

        def allocate():
            db = session_factory()
            try:
                barrier.wait()
                number = OrderNumberAllocator(db).allocate(5, day)
                db.commit()
                with lock:
                    results.append(number)
            except Exception as e:  # collected and asserted below
                with lock:
                    errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=allocate) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == workers
        sequences = sorted(int(n.split("-")[1]) for n in results)
        assert sequences == list(range(1, workers + 1))

        check = session_factory()
        counter = check.get(OrderNumberCounter, (5, day))
        assert counter.last_value == workers
        check.close()
