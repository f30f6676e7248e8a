import httpx
import asyncio
import sys
import uuid

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

async def run_verification() -> bool:
    print(f"🚀  Starting Verification against {BASE_URL}...\n")
    ok = True

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
            if resp.status_code == 200 and resp.json() == {"status": "ok"}:
                print("   ✅  Health Check Passed")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return False
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return False

        # 2. Create Link
        print("\n2. [API] Creating Short Link...")
        long_url = "https://www.example.com/verify"
        code = "v" + uuid.uuid4().hex[:8]
        resp = await client.post("/shorturls", json={"url": long_url, "validity": 5, "shortcode": code})
        if resp.status_code == 201:
            print(f"   ✅  Created: {resp.json()['shortLink']} (expires {resp.json()['expiry']})")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return False

        # 3. Collision
        print("\n3. [API] Verifying Collision...")
        resp = await client.post("/shorturls", json={"url": long_url, "shortcode": code})
        if resp.status_code == 409:
            print("   ✅  Duplicate shortcode rejected")
        else:
            ok = False
            print(f"   ❌  Expected 409, got {resp.status_code}")

        # 4. Verify Redirect
        print("\n4. [API] Verifying Redirect...")
        resp = await client.get(f"/{code}", headers={"Referer": "https://verify.local"}, follow_redirects=False)
        if resp.status_code == 302 and resp.headers.get("location") == long_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            ok = False
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")

        # 5. Verify Stats
        print("\n5. [API] Verifying Stats...")
        resp = await client.get(f"/shorturls/{code}")
        if resp.status_code == 200 and resp.json()["totalClicks"] == 1:
            click = resp.json()["clicks"][0]
            print(f"   ✅  Click recorded: referrer={click['referrer']} geo={click['geo']}")
        else:
            ok = False
            print(f"   ❌  Stats Failed: {resp.status_code} {resp.text}")

        # 6. Unknown shortcode
        print("\n6. [API] Verifying 404...")
        resp = await client.get("/zzzzzzzzzz", follow_redirects=False)
        if resp.status_code == 404:
            print("   ✅  Unknown shortcode is 404")
        else:
            ok = False
            print(f"   ❌  Expected 404, got {resp.status_code}")

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "redirect_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            ok = False
            print(f"   ❌  Metrics Failed: {resp.status_code}")

    print("\n✨ Verification Complete!" if ok else "\n💥 Verification Failed")
    return ok

if __name__ == "__main__":
    sys.exit(0 if asyncio.run(run_verification()) else 1)
