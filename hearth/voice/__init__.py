"""
HEARTH Voice - Spoken reminder delivery (pyttsx3).
"""
