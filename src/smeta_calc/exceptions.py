# src/smeta_calc/exceptions.py
"""
Исключения чтения файлов сметы, импорта и справочников.
"""


class EstimateFormatError(ValueError):
    """Файл не похож на ожидаемую таблицу (нет заголовка, колонок, листа)."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class MissingSheetError(EstimateFormatError):
    """В книге нет обязательного листа."""

    def __init__(self, sheet: str, available: list | None = None):
        super().__init__(
            message=f"Лист {sheet!r} не найден",
            details={"sheet": sheet, "available": available or []},
        )
