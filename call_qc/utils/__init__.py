"""RU: Вспомогательные утилиты (логирование, JSON).

EN: Small shared helpers (logging, JSON extraction).
"""
