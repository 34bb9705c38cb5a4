"""
Ordered asyncio pipelines around PacketEncoder and PacketDecoder.

Compression and decompression may run in an executor, but each pipeline
has exactly one worker task pulling packets off a FIFO queue. Packet K
only starts once packet K-1 has been framed (or unframed) and delivered,
so counters and keystreams advance in submission order.

The first failure is fatal. It is logged, handed to on_error, and raised
again from every later submit() or drain() call.
"""
import asyncio
import contextlib
import logging

from streamcrypt.errors import FramingError

logger = logging.getLogger(__name__)


class _OrderedPipeline:
    kind = None

    def __init__(self, state, on_packet, on_error=None, executor=None, offload=None):
        self.state = state
        self.on_packet = on_packet
        self.on_error = on_error
        self.executor = executor
        if offload is None:
            offload = state.config.offload_compression
        self.offload = offload
        self.error = None
        self._queue = None
        self._task = None
        self._inflight = None
        self._closed = False

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    def start(self):
        """Spawn the worker task on the running event loop."""
        if self._task is not None:
            raise FramingError(f"{self.kind} pipeline already started")
        self._queue = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("%s pipeline started (offload=%s)", self.kind, self.offload)
        return self

    def submit(self, data):
        """Queue one buffer. Never blocks; packets are processed in call order."""
        if self.error is not None:
            raise self.error
        if self._task is None or self._closed:
            raise FramingError(f"{self.kind} pipeline is not running")
        self._queue.put_nowait(bytes(data))

    async def drain(self):
        """Wait until every submitted packet has been delivered."""
        if self._queue is not None:
            await self._queue.join()
        if self.error is not None:
            raise self.error

    async def close(self):
        """
        Stop the worker. A packet already taken off the queue is finished and
        delivered first, so every counter step has a matching delivery.
        Packets still queued are dropped before any cryptographic work.
        """
        if self._closed:
            return
        self._closed = True
        dropped = self._discard_pending()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)
        logger.info("%s pipeline closed (%d queued packets dropped)", self.kind, dropped)

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                await self.drain()
        finally:
            await self.close()

    async def _offload(self, func, data):
        if not self.offload:
            return func(data)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, data)

    async def _process(self, data):
        raise NotImplementedError

    async def _run(self):
        loop = asyncio.get_running_loop()
        while self.error is None:
            data = await self._queue.get()
            # Cancelling the worker must not cut a packet in half
            self._inflight = loop.create_task(self._handle(data))
            await asyncio.shield(self._inflight)

    async def _handle(self, data):
        try:
            result = await self._process(data)
            self.on_packet(result)
        except Exception as e:
            self._fail(e)
        finally:
            self._queue.task_done()

    def _fail(self, error):
        self.error = error
        dropped = self._discard_pending()
        logger.warning(
            "%s pipeline halted: %s (%d queued packets dropped)",
            self.kind, error, dropped
        )
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("%s pipeline on_error handler raised", self.kind)

    def _discard_pending(self):
        dropped = 0
        if self._queue is None:
            return dropped
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._queue.task_done()
            dropped += 1


class EncodePipeline(_OrderedPipeline):
    """
    Send path: plaintext in, wire units out through on_packet.

    Args:
        encoder (PacketEncoder): Encoder bound to the connection state
        on_packet (callable): Receives each wire unit, in submission order
        on_error (callable): Receives the fatal error, if any
        executor (Executor): Where compression runs (loop default if None)
        offload (bool): Override FramingConfig.offload_compression
    """

    kind = 'encode'

    def __init__(self, encoder, on_packet, on_error=None, executor=None, offload=None):
        super().__init__(encoder.state, on_packet, on_error, executor, offload)
        self.encoder = encoder

    async def _process(self, plaintext):
        payload = await self._offload(self.state.compressor.compress, plaintext)
        # No await between tagging, encryption and the counter bump
        return self.encoder.frame(payload)


class DecodePipeline(_OrderedPipeline):
    """
    Receive path: wire units in, plaintext out through on_packet.

    Arguments mirror EncodePipeline. A checksum mismatch halts the pipeline,
    since the receive counter can no longer line up with the sender's.
    """

    kind = 'decode'

    def __init__(self, decoder, on_packet, on_error=None, executor=None, offload=None):
        super().__init__(decoder.state, on_packet, on_error, executor, offload)
        self.decoder = decoder

    async def _process(self, wire):
        payload = self.decoder.unframe(wire)
        return await self._offload(self.state.compressor.decompress, payload)
