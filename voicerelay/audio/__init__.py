# voicerelay/audio/__init__.py
# =============================
# Audio Layer — VoiceRelay
#
#   downloader.py:  resource handle → cached BinaryPayload
#   normalizer.py:  payload → mono 16 kHz WAV (pydub)
