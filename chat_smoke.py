import asyncio
import json

import httpx
import websockets

BASE = "localhost:4000"


async def main():
    # Create (or reuse) a room over REST, then chat in it over the socket
    async with httpx.AsyncClient(base_url=f"http://{BASE}") as http:
        await http.post("/login", json={"username": "smoke-user"})
        created = await http.post("/rooms", json={"name": "smoke-room"})
        if created.status_code == 201:
            room_id = created.json()["id"]
        else:
            rooms = (await http.get("/rooms")).json()
            room_id = next(r["id"] for r in rooms if r["name"] == "smoke-room")

    async with websockets.connect(f"ws://{BASE}/ws?username=smoke-user") as ws:
        print(f"Online: {await ws.recv()}")

        await ws.send(json.dumps({"type": "join_room", "roomId": room_id, "username": "smoke-user"}))
        print(f"Room users: {await ws.recv()}")

        await ws.send(json.dumps({
            "type": "message",
            "roomId": room_id,
            "sender": "smoke-user",
            "content": "Hello from Python!"
        }))
        print(f"Received: {await ws.recv()}")


if __name__ == "__main__":
    asyncio.run(main())
