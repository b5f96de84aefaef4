#!/usr/bin/env python3
"""Simple CLI for trying consolidation quotes locally"""

import argparse
import asyncio
from typing import List

from dustswap.config import settings
from dustswap.core.recovery.errors import ApprovalCheckFailed, QuoteError
from dustswap.core.swap.constants import default_output_token
from dustswap.core.swap.models import InputLeg, Quote
from dustswap.core.swap.orchestrator import create_swap_orchestrator
from dustswap.core.swap.quote_client import QuoteClient
from dustswap.core.wallet.models import WalletContext
from dustswap.logging_config import setup_logging
from dustswap.providers.zeroex import ZeroExProvider


def parse_legs(values: List[str]) -> List[InputLeg]:
    """``TOKEN:AMOUNT`` pairs, amounts in smallest units."""
    legs = []
    for value in values:
        token, sep, amount = value.partition(":")
        if not sep or not amount.isdigit():
            raise ValueError(f"Expected TOKEN:AMOUNT, got {value!r}")
        legs.append(InputLeg(token_address=token, amount=int(amount)))
    return legs


def print_quote(quote: Quote):
    """Pretty print a combined quote"""
    print(f"\n🔄 Combined Quote {quote.path_id}")
    print("=" * 50)
    print(f"Chain: {quote.chain_id}")
    print(f"Output: {quote.output_token}")
    print(f"Total Buy Amount: {quote.total_buy_amount}")
    print(f"Min Buy Amount:   {quote.min_buy_amount}")
    print(f"Integrator Fee:   {quote.fee_amount}")
    print(f"Gas Estimate:     {quote.gas_estimate}")
    print(f"Allowance Target: {quote.spender_address}")

    print("\nLegs:")
    print("-" * 50)
    for i, (token, amount, out) in enumerate(zip(quote.in_tokens, quote.in_amounts, quote.out_amounts), 1):
        print(f"{i:2d}. {amount:>24} {token} -> {out}")

    if quote.sources:
        print(f"\nSources: {', '.join(quote.sources)}")
    if quote.retry_count:
        print(f"Retries: {quote.retry_count}")


async def cli_quote(taker: str, output: str, legs: List[InputLeg], slippage_bps: int):
    """CLI command to fetch a combined quote"""
    print(f"🔍 Quoting {len(legs)} tokens into {output}...")
    client = QuoteClient(ZeroExProvider())
    try:
        quote = await client.get_quote(legs, output, slippage_bps, taker=taker)
    except QuoteError as e:
        print(f"❌ {e.reason.value}: {e.message}")
        return
    print_quote(quote)


async def cli_plan(taker: str, output: str, legs: List[InputLeg], slippage_bps: int):
    """CLI command to show the calls a swap would submit"""
    orchestrator = create_swap_orchestrator()
    wallet = WalletContext(address=taker, chain_id=settings.chain_id)
    try:
        swap_plan = await orchestrator.plan_swap(legs, output, slippage_bps, wallet)
    except QuoteError as e:
        print(f"❌ {e.reason.value}: {e.message}")
        return
    except ApprovalCheckFailed as e:
        print(f"❌ Approval check failed: {e.message}")
        return

    print_quote(swap_plan.quote)

    print("\nApprovals:")
    print("-" * 50)
    for status in swap_plan.approvals.values():
        marker = "⚠️  needs approval" if status.needs_approval else "✅ approved"
        print(f" - {status.token_address}: {marker} (allowance {status.current_allowance})")

    mode = "atomic batch" if swap_plan.capabilities.atomic_batch_supported and len(swap_plan.plan) > 1 else "sequential"
    print(f"\nCalls ({mode}):")
    print("-" * 50)
    for i, call in enumerate(swap_plan.plan, 1):
        print(f"{i:2d}. [{call.kind.value}] {call.description}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DustSwap CLI")
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (("quote", "Fetch a combined quote"), ("plan", "Quote, check approvals and build the call plan")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("taker", help="Wallet address")
        sub.add_argument("legs", nargs="+", help="Input legs as TOKEN:AMOUNT (smallest units)")
        sub.add_argument("--output", help="Output token address (default: USDC on the configured chain)")
        sub.add_argument("--slippage-bps", type=int, default=settings.default_slippage_bps, help="Slippage in basis points")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    legs = parse_legs(args.legs)
    output = args.output or str(default_output_token(settings.chain_id)["address"])

    if args.command == "quote":
        await cli_quote(args.taker, output, legs, args.slippage_bps)

    elif args.command == "plan":
        await cli_plan(args.taker, output, legs, args.slippage_bps)

    else:
        print(f"❌ Unknown command: {args.command}")
        parser.print_help()


def main_sync():
    asyncio.run(main())


if __name__ == "__main__":
    main_sync()
