from django.core.exceptions import ValidationError
from django.utils.deconstruct import deconstructible
from django.utils.translation import gettext_lazy as _
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@deconstructible
class TimezoneValidator:
    """
    Валидатор названия часового пояса IANA (Europe/Amsterdam)
    """

    def __call__(self, value):
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(
                _('Неизвестный часовой пояс: %(value)s'),
                code='invalid_timezone',
                params={'value': value}
            )

    def __eq__(self, other):
        return isinstance(other, TimezoneValidator)


class TimeRangeValidator:
    """
    Проверяет, что окончание позже начала (время суток или момент времени)
    """

    def __init__(self, start_field='start_time', end_field='end_time'):
        self.start_field = start_field
        self.end_field = end_field

    def __call__(self, attrs):
        start = attrs.get(self.start_field)
        end = attrs.get(self.end_field)
        if start is not None and end is not None and end <= start:
            raise ValidationError(
                _('Окончание должно быть позже начала'),
                code='invalid_range'
            )


def validate_buffer_minutes(value):
    if value < 0:
        raise ValidationError(_('Буфер не может быть отрицательным'), code='negative_buffer')


validate_timezone = TimezoneValidator()
