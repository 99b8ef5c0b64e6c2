"""RU: Диалог: нормализация текста, слияние реплик, привязка замечаний к репликам.

EN: Dialog: text normalization, utterance consolidation, issue attribution.
"""
