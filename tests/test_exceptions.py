from restock_monitor.exceptions import (FetchTimeout, LoopGuardExceeded, MonitorCancelled,
                                       RestockMonitorError, TransientFetchError)


def test_details_in_message():
    error = FetchTimeout("Feed request timed out", {'store': 'https://shop.test'})

    assert str(error) == "Feed request timed out | Details: {'store': 'https://shop.test'}"
    assert isinstance(error, TransientFetchError)
    assert isinstance(error, RestockMonitorError)


def test_defaults():
    assert str(MonitorCancelled()) == "Monitoring cancelled"
    error = LoopGuardExceeded('cart_bounce', 2, 1)
    assert error.message == "Loop guard exceeded on 'cart_bounce'"
    assert error.details['limit'] == 1
