"""RU: Пул ключей провайдеров с учётом регионов.

EN: Region-aware pool of provider credentials.
"""
