#!/usr/bin/env python3
"""
HybridSwap Agent - Live Demo Script
Walks the trade form flow against a running agent: pair selection,
debounced quoting, approval state, price series and (optionally) a swap.

Usage (while agent is running on localhost:8000):
    python3 agent/demo.py
    python3 agent/demo.py --swap     # also submits a small buy

Prerequisites:
    - Agent running: cd agent && python3 -m hybridswap.main
    - .env configured with RPC_URL and a signer (PRIVATE_KEY or WALLET_ADDRESS)
"""

import argparse
import json
import os
import time
from pathlib import Path

import requests
from dotenv import load_dotenv
from web3 import Web3

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

AGENT_URL = os.getenv("AGENT_URL", "http://localhost:8000")
BUY_AMOUNT = Web3.to_wei(float(os.getenv("DEMO_BUY_ETH", "0.0001")), "ether")

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
BOLD = "\033[1m"
RESET = "\033[0m"


def header(title):
    print(f"\n{BOLD}{CYAN}{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}{RESET}\n")


def passed(msg):
    print(f"  {GREEN}PASS{RESET} {msg}")


def failed(msg):
    print(f"  {RED}FAIL{RESET} {msg}")


def info(msg):
    print(f"  {YELLOW}INFO{RESET} {msg}")


def check_api():
    header("STEP 1: Agent API")

    r = requests.get(f"{AGENT_URL}/status")
    assert r.status_code == 200, f"Status endpoint failed: {r.status_code}"
    passed(f"GET /status -> {json.dumps(r.json())}")

    config = requests.get(f"{AGENT_URL}/config").json()
    info(f"Chain ID: {config['chain_id']}")
    info(f"Router:   {config['router']}")
    info(f"OTC:      {config['otc'] or 'none'}")
    return True


def check_pairs():
    header("STEP 2: Pair Selection & Pool Keys")

    pairs = requests.get(f"{AGENT_URL}/pairs").json()
    enabled = []
    for pair in pairs:
        r = requests.post(f"{AGENT_URL}/pairs/{pair['pair_id']}/select")
        body = r.json()
        if body["quoting_enabled"]:
            passed(f"{pair['pair_id']} ({pair['kind']}) pool key resolved")
            enabled.append(pair["pair_id"])
        else:
            failed(f"{pair['pair_id']}: {body['error']}")
    return enabled


def check_quote(pair_id):
    header(f"STEP 3: Debounced Quote ({pair_id})")

    requests.post(f"{AGENT_URL}/pairs/{pair_id}/select")

    # Rapid edits; only the last amount should be quoted
    for amount in (BUY_AMOUNT // 4, BUY_AMOUNT // 2, BUY_AMOUNT):
        requests.post(f"{AGENT_URL}/input", json={"direction": "buy", "amount": amount})

    body = requests.get(f"{AGENT_URL}/quote").json()
    quote = body["quote"]
    if quote is None:
        failed(f"No quote: {body['error']}")
        return False

    passed(f"Buy {Web3.from_wei(BUY_AMOUNT, 'ether')} ETH -> {quote['estimated_output_amount']} ({quote['confidence']})")
    info(f"Minimum after slippage: {quote['min_output_amount']}")
    for portion in quote["source_breakdown"]:
        info(f"  {portion['source'].upper()}: in={portion['input_portion']} out={portion['output_portion']}")
    return True


def check_approval(pair_id):
    header(f"STEP 4: Approval State ({pair_id})")

    r = requests.post(f"{AGENT_URL}/input", json={"direction": "sell", "amount": 10**18})
    state = r.json()["approval_state"]
    passed(f"Selling 1 token requires: {state}")
    if state == "needs_spender_approval":
        info("Next swap runs: Approving Permit2 -> Approving Router -> Selling")
    elif state == "needs_router_approval":
        info("Next swap runs: Approving Router -> Selling")
    return True


def check_price_series():
    header("STEP 5: Price Series")

    body = requests.get(f"{AGENT_URL}/price/series").json()
    if body["state"] != "live":
        failed(f"Price feed {body['state']}: {body['error']}")
        return False

    candles = body["candles"]
    passed(f"{len(candles)} candles loaded")
    if candles:
        last = candles[-1]
        info(f"Last close: {last['close']} at {time.strftime('%Y-%m-%d %H:%M', time.gmtime(last['time']))}")
    if body.get("price_change"):
        change, percent = body["price_change"]
        info(f"Change: {change:+.8f} ({percent:+.2f}%)")
    return True


def run_swap(pair_id):
    header(f"STEP 6: Swap ({pair_id})")

    requests.post(f"{AGENT_URL}/pairs/{pair_id}/select")
    requests.post(f"{AGENT_URL}/input", json={"direction": "buy", "amount": BUY_AMOUNT})
    requests.get(f"{AGENT_URL}/quote")

    r = requests.post(f"{AGENT_URL}/swap")
    if r.status_code != 200:
        failed(f"Swap rejected: {r.status_code} {r.text}")
        return False

    submission = r.json()
    info(f"Submitted: {submission['transaction_id']}")
    if submission["explorer_url"]:
        info(f"Explorer:  {submission['explorer_url']}")

    for _ in range(60):
        time.sleep(1)
        for sub in requests.get(f"{AGENT_URL}/submissions").json():
            if sub["transaction_id"] != submission["transaction_id"]:
                continue
            if sub["status"] == "success":
                passed(f"{sub['label']} confirmed")
                return True
            if sub["status"] == "failed":
                failed(f"{sub['label']} failed: {sub['error']}")
                return False
    failed("No confirmation seen")
    return False


def main():
    parser = argparse.ArgumentParser(description="HybridSwap Agent demo")
    parser.add_argument("--swap", action="store_true", help="Submit a small buy at the end")
    args = parser.parse_args()

    print(f"\n  {BOLD}HybridSwap Agent Demo{RESET}")
    print(f"  Agent: {AGENT_URL}\n")

    results = {}

    try:
        results["API"] = check_api()
    except requests.RequestException as e:
        failed(f"API: {e}")
        print(f"\n{RED}Agent not running! Start it first:{RESET}")
        print("  cd agent && python3 -m hybridswap.main\n")
        return

    enabled = check_pairs()
    results["Pool Keys"] = bool(enabled)

    for pair_id in enabled:
        results[f"Quote {pair_id}"] = check_quote(pair_id)
        results[f"Approval {pair_id}"] = check_approval(pair_id)

    results["Price Series"] = check_price_series()

    if args.swap and enabled:
        results["Swap"] = run_swap(enabled[0])

    header("RESULTS SUMMARY")
    for name, result in results.items():
        status = f"{GREEN}PASS{RESET}" if result else f"{RED}FAIL{RESET}"
        print(f"  {status}  {name}")

    passes = sum(1 for v in results.values() if v)
    print(f"\n  {BOLD}{passes}/{len(results)} checks passed{RESET}\n")


if __name__ == "__main__":
    main()
