# voicerelay/nlp/__init__.py
# ===========================
# Translation Layer — VoiceRelay
#
# Engines: google (public endpoint, also the fallback), openai, groq.
