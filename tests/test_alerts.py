import pytest

from partstore.core.clock import FrozenClock
from partstore.services.alerts import AlertEngine, is_crossing
from partstore.services.notifier import LogNotifier, SmtpNotifier, get_notifier

from conftest import RecordingNotifier, make_settings

PART = {"id": 1, "part_number": "TAN-000623", "description": "Eksempel del", "min_qty": 5}


@pytest.mark.parametrize(
    "min_qty, before, after, expected",
    [
        (5, 6, 5, True),
        (5, 6, 0, True),
        (5, 10, 6, False),
        (5, 5, 4, False),
        (5, 3, 2, False),
        (0, 1, 0, False),
    ],
)
def test_is_crossing(min_qty, before, after, expected):
    assert is_crossing(min_qty, before, after) is expected


async def test_crossing_sends_one_message():
    notifier = RecordingNotifier()
    engine = AlertEngine(notifier, clock=FrozenClock(), recipient="lager@example.com")

    assert await engine.on_outbound(PART, 6, 5) is True

    recipient, subject, body = notifier.sent[0]
    assert recipient == "lager@example.com"
    assert subject == "Low stock: TAN-000623"
    assert "5" in body and "Eksempel del" in body
    assert engine.last_alert(1).quantity == 5


async def test_throttle_window():
    notifier = RecordingNotifier()
    clock = FrozenClock()
    engine = AlertEngine(notifier, clock=clock, throttle_minutes=30)

    assert await engine.on_outbound(PART, 6, 4) is True
    clock.advance(minutes=29)
    assert await engine.on_outbound(PART, 6, 4) is False
    clock.advance(minutes=1)
    assert await engine.on_outbound(PART, 6, 4) is True
    assert len(notifier.sent) == 2


async def test_throttle_is_per_part():
    notifier = RecordingNotifier()
    engine = AlertEngine(notifier, clock=FrozenClock())
    other = {**PART, "id": 2, "part_number": "P-2"}

    assert await engine.on_outbound(PART, 6, 4) is True
    assert await engine.on_outbound(other, 6, 4) is True


async def test_failed_send_does_not_consume_throttle():
    notifier = RecordingNotifier()
    notifier.fail = True
    engine = AlertEngine(notifier, clock=FrozenClock())

    assert await engine.on_outbound(PART, 6, 4) is False
    assert engine.last_alert(1) is None

    notifier.fail = False
    assert await engine.on_outbound(PART, 6, 4) is True


async def test_reset_clears_state():
    engine = AlertEngine(RecordingNotifier(), clock=FrozenClock())
    await engine.on_outbound(PART, 6, 4)
    engine.reset()
    assert engine.last_alert(1) is None


async def test_ledger_alerts_on_crossing_with_throttle(directory, ledger, notifier, clock):
    await directory.create_part("TAN-000623", min_qty=5)
    await ledger.scan_in("TAN-000623", "B7", 7)

    assert (await ledger.scan_out("TAN-000623", None, 1)).alert_sent is False  # 7 -> 6
    assert (await ledger.scan_out("TAN-000623", None, 1)).alert_sent is True  # 6 -> 5
    assert (await ledger.scan_out("TAN-000623", None, 1)).alert_sent is False  # already below

    # Oscillating around the minimum inside the window stays quiet.
    await ledger.scan_in("TAN-000623", None, 5)
    assert (await ledger.scan_out("TAN-000623", None, 5)).alert_sent is False
    assert len(notifier.sent) == 1

    clock.advance(minutes=30)
    await ledger.scan_in("TAN-000623", None, 5)
    assert (await ledger.scan_out("TAN-000623", None, 5)).alert_sent is True
    assert len(notifier.sent) == 2


async def test_zero_minimum_never_alerts(directory, ledger, notifier):
    await directory.create_part("P-1", min_qty=0)
    await ledger.scan_in("P-1", "A1", 2)
    await ledger.scan_out("P-1", "A1", 2)
    assert notifier.sent == []


async def test_inbound_never_alerts(directory, ledger, notifier):
    await directory.create_part("P-1", min_qty=5)
    await ledger.scan_in("P-1", "A1", 1)
    await ledger.scan_in("P-1", "A1", 1)
    assert notifier.sent == []


async def test_notifier_failure_keeps_movement(directory, ledger, notifier):
    await directory.create_part("P-1", min_qty=5)
    await ledger.scan_in("P-1", "A1", 6)
    notifier.fail = True

    movement = await ledger.scan_out("P-1", "A1", 2)

    assert movement.alert_sent is False
    assert await ledger.total_quantity(movement.part_id) == 4


async def test_log_notifier_logs(caplog):
    with caplog.at_level("WARNING"):
        await LogNotifier().send("x@example.com", "Low stock: P-1", "body")
    assert "SMTP not configured" in caplog.text


def test_get_notifier_requires_credentials():
    assert isinstance(get_notifier(make_settings()), LogNotifier)
    configured = make_settings(smtp_user="u", smtp_pass="p", alert_email="lager@example.com")
    notifier = get_notifier(configured)
    assert isinstance(notifier, SmtpNotifier)
    assert notifier.sender == "u"


async def test_alert_sequence_around_minimum(directory, ledger, notifier, clock):
    await directory.create_part("P-5", min_qty=5)
    await ledger.scan_in("P-5", "A1", 6)

    assert (await ledger.scan_out("P-5", None, 2)).alert_sent is True  # 6 -> 4
    assert (await ledger.scan_out("P-5", None, 1)).alert_sent is False  # 4 -> 3

    clock.advance(minutes=31)
    await ledger.scan_in("P-5", None, 4)  # 3 -> 7
    assert (await ledger.scan_out("P-5", None, 3)).alert_sent is True  # 7 -> 4
    assert len(notifier.sent) == 2
