"""RU: Транскрибация: адаптеры провайдеров и оркестратор задач.

EN: Transcription: provider adapters and the job orchestrator.
"""
