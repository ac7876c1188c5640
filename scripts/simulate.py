"""
Checkout Load Simulation

Fires concurrent orders at a running API to exercise the checkout
transaction, the connection pool and the Celery export worker.
Run from project root: python scripts/simulate.py

Anonymous orders are sent with a random client_ref. Pass --phone and
--password of an existing account to also send signed-in orders and
ratings.
"""

import argparse
import asyncio
import base64
import random
import sys
import time
from datetime import datetime
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:3000"
TOTAL_ORDERS = 50

# 1x1 transparent PNG used as a transfer receipt
RECEIPT_PNG = base64.b64encode(
    bytes.fromhex(
        "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
        "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
    )
).decode()


def generate_cart(dishes: list[dict]) -> tuple[list[dict], float]:
    """Random cart of 1-4 dishes and its total."""
    picks = random.sample(dishes, k=min(len(dishes), random.randint(1, 4)))
    cart = [{"dish_id": d["id"], "quantity": random.randint(1, 3)} for d in picks]
    prices = {d["id"]: d["price"] for d in picks}
    total = round(sum(prices[item["dish_id"]] * item["quantity"] for item in cart), 2)
    return cart, total


def generate_order_payload(dishes: list[dict], signed_in: bool) -> dict[str, Any]:
    cart, total = generate_cart(dishes)
    payload: dict[str, Any] = {
        "carrito": cart,
        "total": total,
        "metodo_pago": random.choice(["transferencia", "local"]),
    }
    if payload["metodo_pago"] == "transferencia":
        payload["comprobanteBase64"] = RECEIPT_PNG
        payload["comprobanteMime"] = "image/png"
    if not signed_in:
        payload["cliente_ref"] = f"sim-{random.randint(100000, 999999)}"
    return payload


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    dishes: list[dict],
    token: Optional[str] = None,
) -> dict[str, Any]:
    """Submit one order and time it."""
    payload = generate_order_payload(dishes, signed_in=token is not None)
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    mode = "user" if token else "anonymous"
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/pedidos",
            json=payload,
            headers=headers,
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            return {
                "order_num": order_num,
                "success": True,
                "order_id": response.json().get("order_id"),
                "total": payload["total"],
                "time": elapsed,
                "mode": mode,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
            "mode": mode,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "mode": mode,
        }


async def send_rating(client: httpx.AsyncClient, dish_id: int, token: str) -> int:
    response = await client.post(
        f"{API_BASE_URL}/platillos/{dish_id}/calificaciones",
        json={"calificacion": random.randint(1, 5), "comentario": "simulación"},
        headers={"Authorization": f"Bearer {token}"},
        timeout=30.0,
    )
    return response.status_code


async def login(client: httpx.AsyncClient, phone: str, password: str) -> Optional[str]:
    response = await client.post(
        f"{API_BASE_URL}/login",
        json={"telefono": phone, "contraseña": password},
    )
    if response.status_code != 200:
        print(f"   Login failed: {response.text[:100]}")
        return None
    return response.json()["token"]


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    phone: Optional[str] = None,
    password: Optional[str] = None,
) -> dict[str, Any]:
    print("=" * 70)
    print("CHECKOUT SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"\nHealth: {health.json().get('status')}")

        dishes = (await client.get(f"{API_BASE_URL}/platillos")).json()
        if not dishes:
            print("\nNo dishes in the catalog; seed the database first.")
            return {"total": num_orders, "successful": 0, "failed": num_orders}

        token = await login(client, phone, password) if phone and password else None

        start_time = time.time()
        tasks = [
            send_order(client, i + 1, dishes, token if token and i % 2 else None)
            for i in range(num_orders)
        ]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        if token:
            statuses = await asyncio.gather(
                *(send_rating(client, d["id"], token) for d in dishes[:5])
            )
            print(f"\nRatings sent: {statuses}")

        top = (await client.get(f"{API_BASE_URL}/platillos/mejores")).json()

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful Orders: {len(successful)}/{num_orders}")
    print(f"Failed Orders: {len(failed)}/{num_orders}")
    print(f"Total Time: {total_time}s")

    for mode in ("anonymous", "user"):
        subset = [r for r in results if r["mode"] == mode]
        if subset:
            ok = len([r for r in subset if r["success"]])
            print(f"   {mode}: {ok}/{len(subset)} successful")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print("\nPerformance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   Total Revenue: ${sum(r['total'] for r in successful):.2f}")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']} [{f['mode']}]: {f.get('error', 'Unknown error')}")

    print("\nTop rated:")
    for dish in top:
        print(f"   {dish['name']}: {dish['average']} ({dish['count']})")

    print("\n" + "=" * 70)
    print("Next: check the Celery terminal, then run python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Load Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--phone", help="Phone of an existing account (10 digits)")
    parser.add_argument("--password", help="Password of that account")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")
    summary = asyncio.run(run_simulation(args.orders, args.phone, args.password))
    sys.exit(0 if summary["failed"] == 0 else 1)
