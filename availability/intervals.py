"""
Операции над полуоткрытыми интервалами [start, end).

Все функции чистые и не бросают исключений. Интервалы с end <= start
отсекаются вызывающим кодом до обращения сюда.
"""
from datetime import timedelta
from typing import Iterable, List, Optional

from .domain import Window


def overlaps(a: Window, b: Window) -> bool:
    """Пересекаются ли интервалы. Касание концами пересечением не считается"""
    return a.start < b.end and b.start < a.end


def contains(outer: Window, inner: Window) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def intersect(a: Window, b: Window) -> Optional[Window]:
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if start < end:
        return Window(start, end)
    return None


def subtract(window: Window, cut: Window) -> List[Window]:
    """
    Вырезает cut из window.
    Вложенный вырез делит интервал на два, вырез с одной стороны обрезает его,
    вырез, покрывающий интервал целиком, оставляет пустой список.
    """
    if not overlaps(window, cut):
        return [window]

    pieces = []
    if window.start < cut.start:
        pieces.append(Window(window.start, cut.start))
    if cut.end < window.end:
        pieces.append(Window(cut.end, window.end))
    return pieces


def pad(window: Window, before: timedelta, after: timedelta) -> Window:
    """Расширяет интервал на буферы до и после"""
    return Window(window.start - before, window.end + after)


def merge(windows: Iterable[Window]) -> List[Window]:
    """Объединяет пересекающиеся и соприкасающиеся интервалы, результат отсортирован"""
    merged = []
    for window in sorted(windows):
        if merged and window.start <= merged[-1].end:
            last = merged[-1]
            if window.end > last.end:
                merged[-1] = Window(last.start, window.end)
        else:
            merged.append(window)
    return merged
