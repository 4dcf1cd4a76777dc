"""Message templates."""

WELCOME_MESSAGE = (
    "👋 <b>Clanker Sniper</b>\n\n"
    "I watch new Clanker listings on Base and manage holdings across the configured wallets.\n\n"
    "/sell - sell a percentage of total supply\n"
    "/sellall - sell everything held\n"
    "/balance - show holdings for a token\n"
    "/autobuy on|off - toggle buying new listings"
)

NOT_AUTHORIZED = "You are not authorized to use this bot."

ASK_TOKEN_ADDRESS = "Please provide the token address:"
ASK_PERCENTAGE = "Please provide the percentage of the total supply you want to sell:"
ASK_CONFIRMATION = 'Are you sure you want to sell all tokens? Reply with "yes" or "no":'

INVALID_TOKEN_ADDRESS = (
    "Invalid Ethereum address format. Please try again with a valid address "
    "(0x followed by 40 hexadecimal characters)."
)
INVALID_PERCENTAGE = "Invalid percentage. Please enter a number between 0 and 100."
INVALID_CONFIRMATION = "Please reply with 'yes' or 'no'."
CONFIRMATION_RECEIVED = "Confirmation received"
PROMPT_EXPIRED = "No answer received in time. Operation cancelled."

SELL_ALL_CANCELLED = "Sell all operation cancelled."
CURRENT_HOLDINGS = "Current holdings:\n{holdings}"
OPERATION_ERROR = "An error occurred: {error}"

AUTOBUY_STATUS = "Autobuy is <b>{state}</b> (buy amount: {amount} ETH)."
AUTOBUY_USAGE = "Usage: /autobuy on|off"

BUY_PENDING = "🔄 {mention} is attempting to buy {amount} ETH worth of tokens..."
BUY_DONE = "✅ {mention} successfully bought {amount} ETH worth of tokens\nTransaction: {tx}"
BUY_FAILED = "❌ {mention}'s buy transaction failed: {error}"
SELL_PENDING = "🔄 {mention} is attempting to sell {percentage}% of tokens..."
SELL_FAILED = "❌ {mention}'s sell failed: {error}"
BALANCE_FAILED = "❌ Error retrieving balance: {error}"
