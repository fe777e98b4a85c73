"""Human-readable notification text for sale events and status."""

from dataclasses import dataclass

from crowdwatch.infrastructure.blockchain.events import PurchaseEvent

# Native chain currency is always 18 decimals
NATIVE_DECIMALS = 18


@dataclass(frozen=True)
class TokenMeta:
    """Metadata of the token being sold."""

    address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class NotificationMessage:
    """Formatted text ready for the notification channel."""

    text: str


def format_units(value: int, decimals: int) -> str:
    """Scale an integer amount of base units to a decimal string.

    Trailing fractional zeros are dropped: ``format_units(10**18, 18) == "1"``.

    Args:
        value: Amount in base units
        decimals: Number of decimals of the unit

    Returns:
        Exact decimal representation
    """
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")

    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    if decimals == 0 or fraction == 0:
        return f"{sign}{whole}"

    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{fraction_str}"


def format_native(value: int) -> str:
    """Format a wei amount in native currency units."""
    return format_units(value, NATIVE_DECIMALS)


def format_purchase(
    event: PurchaseEvent, meta: TokenMeta, native_symbol: str = "BNB"
) -> NotificationMessage:
    """Build the sale notification for a purchase.

    Args:
        event: Decoded purchase
        meta: Token symbol and decimals read from chain
        native_symbol: Symbol of the chain currency

    Returns:
        Notification message
    """
    value = format_native(event.value)
    amount = format_units(event.amount, meta.decimals)

    lines = [
        "🎉 *New Sale Detected!*",
        "",
        f"👤 *Purchaser:* {event.purchaser}",
        f"🏦 *Beneficiary:* {event.beneficiary}",
        f"💰 *Value:* {value} {native_symbol}",
        f"🔢 *Token Amount:* {amount} {meta.symbol}",
    ]
    if event.tx_hash:
        lines.append(f"🔗 *Tx:* `{event.tx_hash}`")

    return NotificationMessage(text="\n".join(lines))


def format_status(
    remaining_tokens: str,
    wei_raised: str,
    rate: str,
    symbol: str,
    native_symbol: str = "BNB",
) -> NotificationMessage:
    """Build the sale status summary.

    All amounts are already-formatted decimal strings.
    """
    text = "\n".join(
        [
            "📊 *Sale Status:*",
            "",
            f"🏦 *Tokens remaining:* {remaining_tokens} {symbol}",
            f"💰 *{native_symbol} raised:* {wei_raised} {native_symbol}",
            f"🔢 *Conversion rate:* {rate} tokens per {native_symbol}",
            f"🔄 *Token symbol:* {symbol}",
        ]
    )
    return NotificationMessage(text=text)


def format_purchase_guide(contract_address: str, native_symbol: str = "BNB") -> NotificationMessage:
    """Build the how-to-buy guide."""
    text = "\n".join(
        [
            "🔹 *How to Buy Tokens:*",
            "",
            f"1. **Send {native_symbol} to the contract:**",
            f"   - Send {native_symbol} directly to the contract address: `{contract_address}`",
            f"   - Make sure to send the right amount of {native_symbol} for the tokens you want.",
            "",
            "2. **Step by step:**",
            "   - Open your wallet (MetaMask, Trust Wallet, etc.).",
            f"   - Choose the option to send {native_symbol}.",
            f"   - Paste the contract address (`{contract_address}`) in the \"To\" field.",
            f"   - Enter the amount of {native_symbol} you want to send.",
            "   - Confirm the transaction.",
            "",
            "🔹 *Note:*",
            f"- Always double-check the contract address before sending any {native_symbol}.",
            "- Blockchain transactions are irreversible.",
            "",
            "📢 *Happy buying!*",
        ]
    )
    return NotificationMessage(text=text)


def format_welcome() -> NotificationMessage:
    """Reply to ``/start``."""
    return NotificationMessage(
        text="Welcome to the Crowdsale bot! Use /help to see the available commands."
    )


def format_help() -> NotificationMessage:
    """Reply to ``/help``."""
    text = "\n".join(
        [
            "📋 *Available Commands:*",
            "/start - Start interacting with the bot",
            "/help - Show this help message",
            "/guide - Get instructions on how to buy tokens",
            "/status - Check the current sale status",
        ]
    )
    return NotificationMessage(text=text)


def format_status_error() -> NotificationMessage:
    """Reply to ``/status`` when the sale state cannot be read."""
    return NotificationMessage(text="Failed to fetch the sale status. Please try again later.")
