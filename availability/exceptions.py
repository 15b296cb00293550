class SchedulingError(Exception):
    """Базовая ошибка подсистемы расписания"""


class ConfigurationError(SchedulingError):
    """Некорректные данные типа события или правила расписания"""


class RangeError(SchedulingError):
    """Некорректный или слишком большой запрошенный диапазон дат"""


class IntegrationUnavailable(SchedulingError):
    """Внешний календарь недоступен или не ответил вовремя"""
