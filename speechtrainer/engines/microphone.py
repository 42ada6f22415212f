import asyncio
import logging

import sounddevice as sd
import torch

from speechtrainer.api.schemas import CaptureConstraints
from speechtrainer.core.errors import DeviceUnavailableError, PermissionDeniedError
from speechtrainer.core.platform import FrameCallback, MicrophoneBackend, MicrophoneStream

logger = logging.getLogger(__name__)


class SoundDeviceStream(MicrophoneStream):
    def __init__(self, stream: sd.InputStream):
        self._stream = stream
        self.sample_rate = int(stream.samplerate)
        self.channels = stream.channels

    def pause(self) -> None:
        self._stream.stop()

    def resume(self) -> None:
        self._stream.start()

    def close(self) -> None:
        try:
            self._stream.stop()
        finally:
            self._stream.close()


class SoundDeviceMicrophone(MicrophoneBackend):
    """
    PortAudio input through sounddevice. Frames arrive on the PortAudio
    thread and are handed to the event loop with ``call_soon_threadsafe``.
    PortAudio has no echo cancellation, noise suppression or gain control,
    so those constraints are accepted but not applied.
    """

    def __init__(self, device=None, blocksize: int = 1600):
        self.device = device
        self.blocksize = blocksize

    async def open(
        self, constraints: CaptureConstraints, on_frame: FrameCallback
    ) -> MicrophoneStream:
        loop = asyncio.get_running_loop()

        try:
            sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceUnavailableError(f"No audio input device available: {e}")

        def callback(indata, frames, time_info, status):
            if status:
                logger.debug(f"Input stream status: {status}")
            frame = torch.from_numpy(indata.T.copy())
            loop.call_soon_threadsafe(on_frame, frame)

        try:
            stream = sd.InputStream(
                samplerate=constraints.sample_rate,
                channels=constraints.channels,
                dtype="float32",
                device=self.device,
                blocksize=self.blocksize,
                callback=callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            if "permission" in str(e).lower():
                raise PermissionDeniedError("Microphone access was denied.")
            raise DeviceUnavailableError(f"Failed to open audio input: {e}")

        logger.info(f"Opened input device {self.device if self.device is not None else 'default'}")
        return SoundDeviceStream(stream)
