"""Canned starter questions offered by the interactive chat."""

from __future__ import annotations

EXAMPLE_GROUPS: list[tuple[str, list[str]]] = [
    ("Examples", [
        "Which NFT collections are trending in the last 24h?",
        "Show top NFT collections by volume this week.",
        "What's the floor price and 24h volume for Pudgy Penguins?",
        "Find BAYC NFTs with gold traits.",
    ]),
    ("Quick actions", [
        "Show top tokens by 24h volume on Ethereum.",
        "Which tokens are trending on Base today?",
        'Search collections named "Bored Ape".',
        "Get a swap quote to trade 1 ETH to USDC on Ethereum.",
    ]),
    ("Wallet & items", [
        "Show NFT holdings for a wallet (you can ask me for the address).",
        "List token balances for a wallet.",
        "Get details for the BONK token.",
        "How active is the Doodles collection today?",
    ]),
]

# Flat list; ``/examples N`` sends EXAMPLE_PROMPTS[N - 1].
EXAMPLE_PROMPTS: list[str] = [q for _, group in EXAMPLE_GROUPS for q in group]
