"""RU: Оценка диалогов языковыми моделями с эскалацией на более сильную модель.

EN: Language-model evaluation of dialogs with escalation to a stronger model.
"""
