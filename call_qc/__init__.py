"""RU: Ядро контроля качества звонков: транскрибация, оценка, разметка диалога.

EN: Call quality-control core: transcription jobs, evaluation, dialog annotation.
"""

__version__ = "0.3.0"
