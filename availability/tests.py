from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from unittest import mock
from zoneinfo import ZoneInfo

import requests

from .busy_time import (
    MicrosoftGraphBusyTimeProvider, NullBusyTimeProvider, apply_busy_intervals,
    fetch_busy_intervals, parse_schedule_response,
)
from .cache import AvailabilityCache
from .candidates import generate_candidates, one_off_touching, split_window
from .capacity import remaining_seats, slot_capacity
from .domain import (
    AvailabilityContext, BlockedWindow, BookingWindow, ComputedSlot, EventTypeConfig,
    OneOffWindow, RecurringRule, Window,
)
from .engine import (
    available_dates, candidate_windows, compute_slots, group_slots_by_date, next_available_slot,
)
from .exceptions import ConfigurationError, IntegrationUnavailable, RangeError
from .guard import check_slot
from .intervals import contains, intersect, merge, overlaps, subtract
from .models import AvailabilitySchedule, BlockedTime, EventSlot, EventType
from .recurrence import expand_rules, local_day_of_week
from .services import AvailabilityService
from bookings.models import Booking

AMSTERDAM = ZoneInfo('Europe/Amsterdam')


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def minutes(value):
    return timedelta(minutes=value)


def next_monday():
    """Понедельник через 7-13 дней в Амстердаме, чтобы слоты всегда были в будущем"""
    today = timezone.now().astimezone(AMSTERDAM).date()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7)


def local(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=AMSTERDAM)


# 2027-01-04 - понедельник, в Амстердаме UTC+1
MONDAY_RANGE = (utc(2027, 1, 4), utc(2027, 1, 5))
MONDAY_RULE = RecurringRule(day_of_week=1, start_time=time(9), end_time=time(10))


def make_event_type(**kwargs):
    params = {
        'id': 'consult',
        'duration': minutes(30),
        'timezone': 'Europe/Amsterdam',
    }
    params.update(kwargs)
    return EventTypeConfig(**params)


class IntervalsTestCase(SimpleTestCase):

    def test_touching_windows_do_not_overlap(self):
        """Полуоткрытые интервалы: касание концами не пересечение"""
        a = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))
        b = Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10))
        self.assertFalse(overlaps(a, b))
        self.assertIsNone(intersect(a, b))
        self.assertTrue(overlaps(a, Window(utc(2027, 1, 4, 8, 59), utc(2027, 1, 4, 10))))

    def test_contains_and_intersect(self):
        outer = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 12))
        inner = Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10))
        self.assertTrue(contains(outer, inner))
        self.assertFalse(contains(inner, outer))
        self.assertEqual(intersect(outer, inner), inner)

    def test_subtract(self):
        """Вырез посередине делит интервал, вырез целиком оставляет пустой список"""
        window = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 12))
        middle = Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10))
        self.assertEqual(subtract(window, middle), [
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9)),
            Window(utc(2027, 1, 4, 10), utc(2027, 1, 4, 12)),
        ])
        self.assertEqual(subtract(middle, window), [])
        head = Window(utc(2027, 1, 4, 7), utc(2027, 1, 4, 9))
        self.assertEqual(subtract(window, head), [Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 12))])

    def test_merge_overlapping_and_touching(self):
        merged = merge([
            Window(utc(2027, 1, 4, 10), utc(2027, 1, 4, 11)),
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9)),
            Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 9, 30)),
            Window(utc(2027, 1, 4, 10, 30), utc(2027, 1, 4, 12)),
        ])
        self.assertEqual(merged, [
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9, 30)),
            Window(utc(2027, 1, 4, 10), utc(2027, 1, 4, 12)),
        ])


class DomainValidationTestCase(SimpleTestCase):

    def test_invalid_event_type_config(self):
        with self.assertRaises(ConfigurationError):
            make_event_type(duration=timedelta(0))
        with self.assertRaises(ConfigurationError):
            make_event_type(buffer_before=minutes(-5))
        with self.assertRaises(ConfigurationError):
            make_event_type(capacity=0)

    def test_invalid_rule(self):
        with self.assertRaises(ConfigurationError):
            RecurringRule(day_of_week=7, start_time=time(9), end_time=time(10))
        with self.assertRaises(ConfigurationError):
            RecurringRule(day_of_week=1, start_time=time(10), end_time=time(9))

    def test_naive_or_inverted_windows_rejected(self):
        with self.assertRaises(ConfigurationError):
            BookingWindow(datetime(2027, 1, 4, 9), datetime(2027, 1, 4, 10))
        with self.assertRaises(ConfigurationError):
            BlockedWindow(utc(2027, 1, 4, 10), utc(2027, 1, 4, 9))
        with self.assertRaises(ConfigurationError):
            BookingWindow(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10), status='unknown')
        with self.assertRaises(ConfigurationError):
            OneOffWindow(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10), max_attendees=0)


class RecurrenceTestCase(SimpleTestCase):

    def test_day_of_week_starts_on_sunday(self):
        self.assertEqual(local_day_of_week(date(2027, 1, 3)), 0)
        self.assertEqual(local_day_of_week(date(2027, 1, 4)), 1)
        self.assertEqual(local_day_of_week(date(2027, 1, 9)), 6)

    def test_expand_rule_in_local_time(self):
        windows = expand_rules([MONDAY_RULE], *MONDAY_RANGE, 'Europe/Amsterdam')
        self.assertEqual(windows, [Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))])

    def test_spring_forward(self):
        """Переход на летнее время: 09:00 по Амстердаму сдвигается с 08:00 на 07:00 UTC"""
        rule = RecurringRule(day_of_week=0, start_time=time(9), end_time=time(11))
        windows = expand_rules([rule], utc(2026, 3, 22), utc(2026, 3, 30), 'Europe/Amsterdam')
        self.assertEqual(windows, [
            Window(utc(2026, 3, 22, 8), utc(2026, 3, 22, 10)),
            Window(utc(2026, 3, 29, 7), utc(2026, 3, 29, 9)),
        ])

    def test_fall_back(self):
        rule = RecurringRule(day_of_week=0, start_time=time(9), end_time=time(11))
        windows = expand_rules([rule], utc(2026, 10, 18), utc(2026, 10, 26), 'Europe/Amsterdam')
        self.assertEqual(windows, [
            Window(utc(2026, 10, 18, 7), utc(2026, 10, 18, 9)),
            Window(utc(2026, 10, 25, 8), utc(2026, 10, 25, 10)),
        ])

    def test_inactive_rules_and_unknown_timezone(self):
        inactive = RecurringRule(day_of_week=1, start_time=time(9), end_time=time(10), is_active=False)
        self.assertEqual(expand_rules([inactive], *MONDAY_RANGE, 'Europe/Amsterdam'), [])
        with self.assertRaises(ConfigurationError):
            expand_rules([MONDAY_RULE], *MONDAY_RANGE, 'Mars/Olympus')

    def test_several_rules_same_day(self):
        afternoon = RecurringRule(day_of_week=1, start_time=time(14), end_time=time(15))
        windows = expand_rules([MONDAY_RULE, afternoon], *MONDAY_RANGE, 'Europe/Amsterdam')
        self.assertEqual(len(windows), 2)


class CandidatesTestCase(SimpleTestCase):

    def test_split_drops_remainder(self):
        window = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))
        slots = split_window(window, minutes(25))
        self.assertEqual(slots, [
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 25)),
            Window(utc(2027, 1, 4, 8, 25), utc(2027, 1, 4, 8, 50)),
        ])

    def test_overlapping_windows_are_merged(self):
        """Пересекающиеся окна правила и разового слота не дают дублей"""
        windows = [
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9)),
            Window(utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9, 30)),
        ]
        slots = generate_candidates(windows, minutes(30), *MONDAY_RANGE)
        self.assertEqual([slot.start for slot in slots], [
            utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9),
        ])

    def test_range_filter_by_start(self):
        window = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 10))
        slots = generate_candidates([window], minutes(60), utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9, 30))
        self.assertEqual(slots, [Window(utc(2027, 1, 4, 9), utc(2027, 1, 4, 10))])

    def test_one_off_touching(self):
        inside = OneOffWindow(utc(2027, 1, 4, 12), utc(2027, 1, 4, 13))
        inactive = OneOffWindow(utc(2027, 1, 4, 14), utc(2027, 1, 4, 15), is_active=False)
        outside = OneOffWindow(utc(2027, 1, 6, 12), utc(2027, 1, 6, 13))
        # Начинается до диапазона, но заходит в него
        earlier = OneOffWindow(utc(2027, 1, 3, 23), utc(2027, 1, 4, 1))
        self.assertEqual(
            one_off_touching([inside, inactive, outside, earlier], *MONDAY_RANGE),
            [inside.window, earlier.window]
        )


class ComputeSlotsTestCase(SimpleTestCase):

    def test_simple_single_window(self):
        """Одно правило 09:00-10:00, длительность 30 минут - два доступных слота"""
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,))
        slots = compute_slots(context, *MONDAY_RANGE)

        self.assertEqual(slots, [
            ComputedSlot(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), True, 1),
            ComputedSlot(utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9), True, 1),
        ])

    def test_buffer_collision(self):
        """Буфер 15 минут: бронирование 09:30 закрывает и слот 09:00"""
        event_type = make_event_type(buffer_before=minutes(15), buffer_after=minutes(15))
        booking = BookingWindow(utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9))
        context = AvailabilityContext(event_type=event_type, rules=(MONDAY_RULE,), bookings=(booking,))

        slots = compute_slots(context, *MONDAY_RANGE)

        self.assertEqual(len(slots), 2)
        self.assertFalse(any(slot.available for slot in slots))
        self.assertEqual([slot.remaining_seats for slot in slots], [0, 0])

    def test_cancelled_booking_ignored(self):
        booking = BookingWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), status='cancelled')
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,), bookings=(booking,))
        self.assertTrue(all(slot.available for slot in compute_slots(context, *MONDAY_RANGE)))

    def test_group_capacity(self):
        """Вместимость 3 и два бронирования - слот доступен, осталось одно место"""
        event_type = make_event_type(capacity=3)
        bookings = (
            BookingWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30)),
            BookingWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), status='pending'),
        )
        context = AvailabilityContext(event_type=event_type, rules=(MONDAY_RULE,), bookings=bookings)

        first, second = compute_slots(context, *MONDAY_RANGE)

        self.assertTrue(first.available)
        self.assertEqual(first.remaining_seats, 1)
        self.assertEqual(second.remaining_seats, 3)

    def test_remaining_seats_never_negative(self):
        bookings = [BookingWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9), attendee_count=5)]
        self.assertEqual(remaining_seats(2, bookings), 0)

    def test_blocked_slot_removed(self):
        blocked = (
            BlockedWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), reason='Праздник'),
            BlockedWindow(utc(2027, 1, 4, 8, 30), utc(2027, 1, 4, 9), event_type_id='other'),
        )
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,), blocked=blocked)

        slots = compute_slots(context, *MONDAY_RANGE)

        self.assertEqual([slot.start for slot in slots], [utc(2027, 1, 4, 8, 30)])

    def test_one_off_window(self):
        one_off = OneOffWindow(utc(2027, 1, 5, 13), utc(2027, 1, 5, 14))
        context = AvailabilityContext(event_type=make_event_type(), one_off_windows=(one_off,))
        slots = compute_slots(context, utc(2027, 1, 5), utc(2027, 1, 6))
        self.assertEqual(len(slots), 2)

    def test_grid_independent_of_range_start(self):
        """Разовое окно, начавшееся до диапазона, не сдвигает сетку слотов"""
        one_off = OneOffWindow(utc(2027, 1, 4, 7, 45), utc(2027, 1, 4, 8, 15))
        context = AvailabilityContext(
            event_type=make_event_type(), rules=(MONDAY_RULE,), one_off_windows=(one_off,)
        )

        full_day = compute_slots(context, *MONDAY_RANGE)
        from_eight = compute_slots(context, utc(2027, 1, 4, 8), utc(2027, 1, 5))

        self.assertEqual([slot.start for slot in full_day], [utc(2027, 1, 4, 7, 45), utc(2027, 1, 4, 8, 15)])
        self.assertEqual(from_eight, full_day[1:])

    def test_chained_one_off_windows_before_range(self):
        chain = (
            OneOffWindow(utc(2027, 1, 4, 22, 15), utc(2027, 1, 4, 23)),
            OneOffWindow(utc(2027, 1, 4, 23), utc(2027, 1, 5, 1)),
        )
        context = AvailabilityContext(event_type=make_event_type(), one_off_windows=chain)
        self.assertEqual(
            candidate_windows(context, utc(2027, 1, 5), utc(2027, 1, 6)),
            [Window(utc(2027, 1, 5, 0, 15), utc(2027, 1, 5, 0, 45))]
        )

    def test_one_off_capacity_override(self):
        """Разовый воркшоп со своей вместимостью"""
        workshop = OneOffWindow(utc(2027, 1, 5, 13), utc(2027, 1, 5, 14), max_attendees=10)
        booking = BookingWindow(utc(2027, 1, 5, 13), utc(2027, 1, 5, 13, 30), attendee_count=4)
        context = AvailabilityContext(
            event_type=make_event_type(), rules=(MONDAY_RULE,),
            one_off_windows=(workshop,), bookings=(booking,)
        )

        first, second = compute_slots(context, utc(2027, 1, 5), utc(2027, 1, 6))

        self.assertTrue(first.available)
        self.assertEqual(first.remaining_seats, 6)
        self.assertEqual(second.remaining_seats, 10)
        # Слот правила вне воркшопа сохраняет вместимость типа события
        rule_slot = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30))
        self.assertEqual(slot_capacity(rule_slot, 1, [workshop]), 1)

    def test_drops_started_slots(self):
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,))
        slots = compute_slots(context, *MONDAY_RANGE, now=utc(2027, 1, 4, 8))
        self.assertEqual([slot.start for slot in slots], [utc(2027, 1, 4, 8, 30)])

    def test_idempotent(self):
        """Одинаковые входные данные дают одинаковый результат"""
        booking = BookingWindow(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30))
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,), bookings=(booking,))
        self.assertEqual(compute_slots(context, *MONDAY_RANGE), compute_slots(context, *MONDAY_RANGE))

    def test_slots_sorted_and_disjoint(self):
        rules = (
            MONDAY_RULE,
            RecurringRule(day_of_week=1, start_time=time(9, 15), end_time=time(11)),
            RecurringRule(day_of_week=2, start_time=time(8), end_time=time(9)),
        )
        context = AvailabilityContext(event_type=make_event_type(duration=minutes(45)), rules=rules)
        slots = compute_slots(context, utc(2027, 1, 4), utc(2027, 1, 6))

        starts = [slot.start for slot in slots]
        self.assertEqual(starts, sorted(starts))
        for current, following in zip(slots, slots[1:]):
            self.assertLessEqual(current.end, following.start)

    def test_busy_time_marks_unavailable(self):
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,))
        busy = [Window(utc(2027, 1, 4, 8, 10), utc(2027, 1, 4, 8, 20))]

        first, second = compute_slots(context, *MONDAY_RANGE, busy=busy)

        self.assertFalse(first.available)
        self.assertEqual(first.remaining_seats, 1)
        self.assertTrue(second.available)

    def test_grouping_helpers(self):
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,))
        slots = compute_slots(context, utc(2027, 1, 4), utc(2027, 1, 12))

        grouped = group_slots_by_date(slots, 'Europe/Amsterdam')
        self.assertEqual(list(grouped.keys()), [date(2027, 1, 4), date(2027, 1, 11)])
        self.assertEqual(available_dates(slots, 'Europe/Amsterdam'), [date(2027, 1, 4), date(2027, 1, 11)])
        self.assertEqual(next_available_slot(slots, now=utc(2027, 1, 4, 8, 45)).start, utc(2027, 1, 11, 8))


class SlotGuardTestCase(SimpleTestCase):

    def setUp(self):
        self.event_type = make_event_type()
        self.slot = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30))
        self.now = utc(2027, 1, 1)

    def test_allow_free_slot(self):
        decision = check_slot(self.event_type, self.slot, [], [], now=self.now)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.state, 'confirmed')
        self.assertEqual(decision.remaining_seats, 0)

    def test_deny_past(self):
        decision = check_slot(self.event_type, self.slot, [], [], now=utc(2027, 1, 4, 8))
        self.assertEqual(decision.state, 'rejected')
        self.assertEqual(decision.conflict.code, 'past')

    def test_deny_wrong_duration(self):
        slot = Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))
        decision = check_slot(self.event_type, slot, [], [], now=self.now)
        self.assertEqual(decision.conflict.code, 'invalid_duration')

    def test_deny_blocked(self):
        blocked = [BlockedWindow(utc(2027, 1, 4, 7), utc(2027, 1, 4, 12))]
        decision = check_slot(self.event_type, self.slot, blocked, [], now=self.now)
        self.assertEqual(decision.conflict.code, 'blocked')

    def test_race_for_last_seat(self):
        """Второй запрос на последнее место получает отказ, какой бы ни была очерёдность"""
        first = check_slot(self.event_type, self.slot, [], [], now=self.now)
        self.assertTrue(first.allowed)

        written = [BookingWindow(self.slot.start, self.slot.end)]
        second = check_slot(self.event_type, self.slot, [], written, now=self.now)
        self.assertFalse(second.allowed)
        self.assertEqual(second.conflict.code, 'booked')
        self.assertEqual(second.conflict.message, 'Этот слот уже забронирован')

    def test_group_full(self):
        event_type = make_event_type(capacity=3)
        bookings = [BookingWindow(self.slot.start, self.slot.end, attendee_count=2)]

        self.assertTrue(check_slot(event_type, self.slot, [], bookings, now=self.now).allowed)
        decision = check_slot(event_type, self.slot, [], bookings, now=self.now, attendees=2)
        self.assertEqual(decision.conflict.code, 'full')

    def test_one_off_capacity(self):
        workshop = OneOffWindow(self.slot.start, self.slot.end, max_attendees=2)
        bookings = [BookingWindow(self.slot.start, self.slot.end)]

        decision = check_slot(self.event_type, self.slot, [], bookings, now=self.now, one_off_windows=[workshop])
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining_seats, 0)

        bookings.append(BookingWindow(self.slot.start, self.slot.end))
        decision = check_slot(self.event_type, self.slot, [], bookings, now=self.now, one_off_windows=[workshop])
        self.assertEqual(decision.conflict.code, 'full')

    def test_deny_calendar_busy(self):
        busy = [Window(utc(2027, 1, 4, 8, 15), utc(2027, 1, 4, 8, 45))]
        decision = check_slot(self.event_type, self.slot, [], [], busy=busy, now=self.now)
        self.assertEqual(decision.conflict.code, 'calendar_busy')


class BusyTimeTestCase(SimpleTestCase):

    def setUp(self):
        cache.clear()

    def test_null_provider_disabled(self):
        self.assertIsNone(fetch_busy_intervals(NullBusyTimeProvider(), '', *MONDAY_RANGE))

    def test_provider_failure_falls_back(self):
        """Ошибка внешнего календаря не ломает расчёт"""
        provider = mock.Mock()
        provider.enabled = True
        provider.get_busy_intervals.side_effect = IntegrationUnavailable('timeout')

        busy = fetch_busy_intervals(provider, 'owner@example.com', *MONDAY_RANGE)

        self.assertIsNone(busy)
        context = AvailabilityContext(event_type=make_event_type(), rules=(MONDAY_RULE,))
        slots = compute_slots(context, *MONDAY_RANGE, busy=busy)
        self.assertTrue(all(slot.available for slot in slots))

    def test_parse_schedule_response(self):
        data = {'value': [{'scheduleItems': [
            {'status': 'busy', 'start': {'dateTime': '2027-01-04T08:00:00.0000000'},
             'end': {'dateTime': '2027-01-04T08:30:00.0000000'}},
            {'status': 'free', 'start': {'dateTime': '2027-01-04T09:00:00.0000000'},
             'end': {'dateTime': '2027-01-04T10:00:00.0000000'}},
            {'status': 'tentative', 'start': {'dateTime': '2027-01-04T11:00:00'},
             'end': {'dateTime': '2027-01-04T12:00:00'}},
        ]}]}
        self.assertEqual(parse_schedule_response(data), [
            Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30)),
            Window(utc(2027, 1, 4, 11), utc(2027, 1, 4, 12)),
        ])

    def test_apply_busy_keeps_unavailable_slots(self):
        slots = [ComputedSlot(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), False, 0)]
        busy = [Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))]
        self.assertEqual(apply_busy_intervals(slots, busy), slots)

    @mock.patch('availability.busy_time.requests.post')
    def test_graph_provider(self, mock_post):
        token_response = mock.Mock(status_code=200)
        token_response.json.return_value = {'access_token': 'token', 'expires_in': 3600}
        schedule_response = mock.Mock(status_code=200)
        schedule_response.json.return_value = {'value': [{'scheduleItems': [
            {'status': 'oof', 'start': {'dateTime': '2027-01-04T08:00:00'},
             'end': {'dateTime': '2027-01-04T09:00:00'}},
        ]}]}
        mock_post.side_effect = [token_response, schedule_response]

        provider = MicrosoftGraphBusyTimeProvider(
            client_id='id', client_secret='secret', tenant_id='tenant',
            default_owner='owner@example.com', timeout=3
        )
        busy = provider.get_busy_intervals('', *MONDAY_RANGE)

        self.assertEqual(busy, [Window(utc(2027, 1, 4, 8), utc(2027, 1, 4, 9))])
        self.assertEqual(mock_post.call_count, 2)
        self.assertEqual(mock_post.call_args.kwargs['timeout'], 3)
        self.assertEqual(mock_post.call_args.kwargs['json']['schedules'], ['owner@example.com'])

    @mock.patch('availability.busy_time.requests.post')
    def test_graph_provider_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout('timed out')
        provider = MicrosoftGraphBusyTimeProvider(
            client_id='id', client_secret='secret', tenant_id='tenant',
            default_owner='owner@example.com'
        )
        with self.assertRaises(IntegrationUnavailable):
            provider.get_busy_intervals('', *MONDAY_RANGE)
        self.assertIsNone(fetch_busy_intervals(provider, '', *MONDAY_RANGE))


class AvailabilityServiceTestCase(TestCase):

    def setUp(self):
        """Настройка тестовых данных"""
        cache.clear()

        self.event_type = EventType.objects.create(
            slug='consult',
            title='Консультация',
            duration_minutes=30,
            timezone='Europe/Amsterdam',
        )
        AvailabilitySchedule.objects.create(
            event_type=self.event_type,
            day_of_week=1,
            start_time=time(9),
            end_time=time(10),
        )

        self.monday = next_monday()
        self.range_start = local(self.monday, 0)
        self.range_end = self.range_start + timedelta(days=1)

    def test_compute_availability(self):
        """Тест вычисления доступности"""
        slots = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_end
        )

        self.assertEqual([slot.start for slot in slots], [
            local(self.monday, 9), local(self.monday, 9, 30),
        ])
        self.assertTrue(all(slot.available for slot in slots))

    def test_get_event_type_by_slug(self):
        self.assertEqual(AvailabilityService.get_event_type('consult'), self.event_type)

        self.event_type.is_active = False
        self.event_type.save()
        with self.assertRaises(EventType.DoesNotExist):
            AvailabilityService.get_event_type('consult')

    def test_invalid_ranges(self):
        with self.assertRaises(RangeError):
            AvailabilityService.compute_availability(
                self.event_type.id, self.range_end, self.range_start
            )
        with self.assertRaises(RangeError):
            AvailabilityService.compute_availability(
                self.event_type.id, datetime(2027, 1, 4), datetime(2027, 1, 5)
            )
        with self.assertRaises(RangeError):
            AvailabilityService.compute_availability(
                self.event_type.id, self.range_start, self.range_start + timedelta(days=90)
            )

    def test_booking_invalidates_cache(self):
        """Новое бронирование сбрасывает закешированную доступность"""
        AvailabilityService.compute_availability(self.event_type.id, self.range_start, self.range_end)

        with self.captureOnCommitCallbacks(execute=True):
            Booking.objects.create(
                event_type=self.event_type,
                customer_name='Анна',
                customer_email='anna@example.com',
                starts_at=local(self.monday, 9),
                ends_at=local(self.monday, 9, 30),
                status='confirmed',
            )

        first, second = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_end
        )
        self.assertFalse(first.available)
        self.assertTrue(second.available)

    def test_global_block_invalidates_cache(self):
        AvailabilityService.compute_availability(self.event_type.id, self.range_start, self.range_end)

        with self.captureOnCommitCallbacks(execute=True):
            BlockedTime.objects.create(
                starts_at=local(self.monday, 9),
                ends_at=local(self.monday, 9, 30),
                reason='Обслуживание',
            )

        slots = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_end
        )
        self.assertEqual([slot.start for slot in slots], [local(self.monday, 9, 30)])

    def test_event_slot_adds_candidates(self):
        tuesday = self.monday + timedelta(days=1)
        EventSlot.objects.create(
            event_type=self.event_type,
            starts_at=local(tuesday, 14),
            ends_at=local(tuesday, 15),
        )
        slots = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_start + timedelta(days=2), use_cache=False
        )
        self.assertEqual(len(slots), 4)

    def test_one_off_before_range_keeps_grid(self):
        """Слоты, показанные при любом начале диапазона, принимаются повторной проверкой"""
        EventSlot.objects.create(
            event_type=self.event_type,
            starts_at=local(self.monday, 8, 45),
            ends_at=local(self.monday, 9, 15),
        )

        full_day = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_end, use_cache=False
        )
        from_nine = AvailabilityService.compute_availability(
            self.event_type.id, local(self.monday, 9), self.range_end, use_cache=False
        )

        self.assertEqual([slot.start for slot in full_day], [local(self.monday, 8, 45), local(self.monday, 9, 15)])
        self.assertEqual([slot.start for slot in from_nine], [local(self.monday, 9, 15)])
        for slot in full_day + from_nine:
            decision = AvailabilityService.check_slot_still_available(self.event_type.id, slot.start, slot.end)
            self.assertTrue(decision.allowed)

        decision = AvailabilityService.check_slot_still_available(
            self.event_type.id, local(self.monday, 9), local(self.monday, 9, 30)
        )
        self.assertEqual(decision.conflict.code, 'outside_schedule')

    def test_event_slot_capacity_override(self):
        tuesday = self.monday + timedelta(days=1)
        EventSlot.objects.create(
            event_type=self.event_type,
            starts_at=local(tuesday, 14),
            ends_at=local(tuesday, 14, 30),
            max_attendees=5,
        )

        slots = AvailabilityService.compute_availability(
            self.event_type.id, local(tuesday, 0), local(tuesday, 23), use_cache=False
        )
        self.assertEqual([slot.remaining_seats for slot in slots], [5])

        decision = AvailabilityService.check_slot_still_available(
            self.event_type.id, local(tuesday, 14), local(tuesday, 14, 30), attendees=3
        )
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining_seats, 2)

    def test_check_slot_still_available(self):
        decision = AvailabilityService.check_slot_still_available(
            self.event_type.id, local(self.monday, 9), local(self.monday, 9, 30)
        )
        self.assertTrue(decision.allowed)

        decision = AvailabilityService.check_slot_still_available(
            self.event_type.id, local(self.monday, 9, 15), local(self.monday, 9, 45)
        )
        self.assertEqual(decision.conflict.code, 'outside_schedule')

    def test_check_past_slot(self):
        past_monday = self.monday - timedelta(days=21)
        decision = AvailabilityService.check_slot_still_available(
            self.event_type.id, local(past_monday, 9), local(past_monday, 9, 30)
        )
        self.assertEqual(decision.conflict.code, 'past')

    @override_settings(BUSY_TIME_PROVIDER='availability.tests.UnavailableProvider')
    def test_external_calendar_failure(self):
        slots = AvailabilityService.compute_availability(
            self.event_type.id, self.range_start, self.range_end
        )
        self.assertEqual(len(slots), 2)
        self.assertTrue(all(slot.available for slot in slots))


class UnavailableProvider(NullBusyTimeProvider):

    @property
    def enabled(self):
        return True

    def get_busy_intervals(self, owner, range_start, range_end):
        raise IntegrationUnavailable('Сервис календаря недоступен')


class AvailabilityCacheTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.event_type_id = 'c0ffee00-0000-0000-0000-000000000001'
        self.slots = [ComputedSlot(utc(2027, 1, 4, 8), utc(2027, 1, 4, 8, 30), True, 1)]

    def test_availability_cache_set_get(self):
        """Тест сохранения и получения из кеша"""
        AvailabilityCache.set_availability(self.event_type_id, *MONDAY_RANGE, True, self.slots)

        self.assertEqual(AvailabilityCache.get_availability(self.event_type_id, *MONDAY_RANGE, True), self.slots)
        # Запрос без внешнего календаря кешируется отдельно
        self.assertIsNone(AvailabilityCache.get_availability(self.event_type_id, *MONDAY_RANGE, False))

    def test_ranges_differing_below_second(self):
        AvailabilityCache.set_availability(self.event_type_id, *MONDAY_RANGE, True, self.slots)

        shifted = MONDAY_RANGE[0] + timedelta(microseconds=1)
        self.assertIsNone(AvailabilityCache.get_availability(self.event_type_id, shifted, MONDAY_RANGE[1], True))

    def test_availability_cache_invalidation(self):
        """Тест инвалидации кеша"""
        AvailabilityCache.set_availability(self.event_type_id, *MONDAY_RANGE, True, self.slots)

        AvailabilityCache.invalidate_event_type(self.event_type_id)

        self.assertIsNone(AvailabilityCache.get_availability(self.event_type_id, *MONDAY_RANGE, True))
        self.assertEqual(AvailabilityCache.get_version(self.event_type_id), 2)
