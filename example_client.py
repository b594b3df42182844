#!/usr/bin/env python3
"""
Example client for the Empathic Agent.

This script subscribes to the agent's websocket event stream and prints
emotion updates and transcriptions as they arrive.
"""

import asyncio
import json
import logging
import os
from typing import Optional

import websockets

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class EmpathicAgentClient:
    """Client for the empathic agent event stream."""

    def __init__(self, server_url: str = "ws://localhost:8000/ws"):
        """
        Initialize the client.

        Args:
            server_url: Websocket URL of the empathic agent server
        """
        self.server_url = server_url
        self.websocket: Optional[websockets.WebSocketClientProtocol] = None
        self.is_connected = False

    async def connect(self):
        """Connect to the empathic agent server."""
        try:
            self.websocket = await websockets.connect(self.server_url)
            self.is_connected = True
            logger.info(f"Connected to empathic agent at {self.server_url}")
        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            raise

    async def disconnect(self):
        """Disconnect from the server."""
        if self.websocket:
            await self.websocket.close()
        self.is_connected = False
        logger.info("Disconnected from empathic agent")

    async def request_state(self):
        """Ask the server for a full session snapshot."""
        if not self.is_connected:
            return
        await self.websocket.send(json.dumps({"type": "get_state"}))

    async def listen(self):
        """Handle incoming events until the connection closes."""
        try:
            async for message in self.websocket:
                try:
                    data = json.loads(message)
                    message_type = data.get("type")

                    if message_type == "emotion_update":
                        self._handle_emotion_update(data["data"])

                    elif message_type == "transcription":
                        self._handle_transcription(data["data"])

                    elif message_type == "session_state":
                        self._handle_session_state(data["data"])

                    elif message_type == "error":
                        logger.error(f"Server error: {data['message']}")

                    else:
                        logger.debug(f"Unknown message type: {message_type}")

                except json.JSONDecodeError:
                    logger.error("Invalid JSON received from server")
                except Exception as e:
                    logger.error(f"Error handling message: {e}")

        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection to server closed")
            self.is_connected = False

    def _handle_emotion_update(self, data):
        combined = data.get("combined")
        if combined:
            logger.info(f"Emotion: {combined['emotion']} "
                        f"(confidence: {combined['confidence']:.2f})")
        for source in ("facial", "voice"):
            estimate = data.get(source)
            if estimate:
                logger.debug(f"  {source}: {estimate['emotion']} ({estimate['confidence']:.2f})")

    def _handle_transcription(self, data):
        marker = "final" if data["is_final"] else "partial"
        logger.info(f"Transcript ({marker}): {data['text']}")

    def _handle_session_state(self, data):
        logger.info(f"Session {data['status']}: "
                    f"camera={data['is_camera_active']} mic={data['is_mic_active']} "
                    f"listening={data['is_listening']} messages={len(data['messages'])}")


async def main():
    """Main function demonstrating client usage."""
    client = EmpathicAgentClient(os.getenv("AGENT_WS_URL", "ws://localhost:8000/ws"))

    try:
        await client.connect()
        await client.request_state()
        await client.listen()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Error: {e}")
    finally:
        await client.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
