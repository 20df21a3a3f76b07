"""
Well-known Solana token mints used for pool selection and denominations.
"""

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

# Canonical stable reference asset, then canonical native asset
STABLE_REFERENCE_MINT = USDC_MINT
NATIVE_REFERENCE_MINT = WRAPPED_SOL_MINT

TOKEN_SYMBOLS = {
    WRAPPED_SOL_MINT: "SOL",
    USDC_MINT: "USDC",
    USDT_MINT: "USDT",
}

SYMBOL_TO_MINT = {symbol: mint for mint, symbol in TOKEN_SYMBOLS.items()}
