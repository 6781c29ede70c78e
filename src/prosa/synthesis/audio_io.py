"""Decodificacao do audio sintetizado e medicao de amplitude.

Converte bytes (WAV, FLAC, OGG, MP3 via libsndfile) em array numpy
float32 mono e mede o RMS em torno do cursor de playback.
"""

from __future__ import annotations

import io
import wave

import numpy as np
import soundfile as sf

from prosa.exceptions import AudioFormatError
from prosa.logging import get_logger

logger = get_logger("synthesis.audio_io")

# ~46ms a 22050Hz, ~21ms a 48kHz
AMPLITUDE_WINDOW = 1024


def decode_audio(audio_bytes: bytes) -> tuple[np.ndarray, int]:
    """Decodifica bytes de audio para array float32 mono.

    Args:
        audio_bytes: Corpo da resposta do provider de voz.

    Returns:
        Tupla (array float32 mono, sample rate em Hz).

    Raises:
        AudioFormatError: Se os bytes estao vazios ou o formato nao e suportado.
    """
    if not audio_bytes:
        raise AudioFormatError("Audio vazio (0 bytes)")

    try:
        data, sample_rate = sf.read(io.BytesIO(audio_bytes), dtype="float32", always_2d=True)
    except Exception:
        # libsndfile sem suporte ao container: tenta WAV PCM 16-bit puro
        try:
            data, sample_rate = _decode_pcm16_wav(audio_bytes)
        except (wave.Error, EOFError, ValueError) as wav_err:
            raise AudioFormatError(f"Nao foi possivel decodificar o audio: {wav_err}") from wav_err

    mono = data.mean(axis=1) if data.ndim > 1 else data
    mono = np.ascontiguousarray(mono, dtype=np.float32)

    if mono.size == 0:
        raise AudioFormatError("Audio sem amostras")

    logger.debug(
        "audio_decoded",
        samples=int(mono.size),
        sample_rate=int(sample_rate),
        duration_s=round(mono.size / sample_rate, 3),
    )
    return mono, int(sample_rate)


def _decode_pcm16_wav(audio_bytes: bytes) -> tuple[np.ndarray, int]:
    with wave.open(io.BytesIO(audio_bytes), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"sample width {wf.getsampwidth()} nao suportado (esperado 2)")
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
        raw = wf.readframes(wf.getnframes())

    pcm = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    return pcm.reshape(-1, channels), sample_rate


def rms_at(samples: np.ndarray, cursor: int, window: int = AMPLITUDE_WINDOW) -> float:
    """RMS das amostras em uma janela centrada no cursor, em [0, 1].

    Args:
        samples: Audio float32 mono.
        cursor: Indice da amostra sendo tocada.
        window: Tamanho da janela em amostras.
    """
    if samples.size == 0 or cursor < 0 or cursor >= samples.size:
        return 0.0
    start = max(0, cursor - window // 2)
    chunk = samples[start : start + window]
    if chunk.size == 0:
        return 0.0
    value = float(np.sqrt(np.mean(np.square(chunk, dtype=np.float64))))
    return min(value, 1.0)
