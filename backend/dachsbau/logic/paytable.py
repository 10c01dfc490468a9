"""Symbol tables, payouts and bonus constants for the 3-cell slot."""

# Symbols
CHERRY = "🍒"
LEMON = "🍋"
ORANGE = "🍊"
GRAPES = "🍇"
MELON = "🍉"
STAR = "⭐"
DIAMOND = "💎"
DACHS = "🦡"
WILD = "🃏"

GRID_SIZE = 3

# Weighted table for ordinary cells (the rare symbol is drawn separately)
SYMBOL_WEIGHTS: list[tuple[str, int]] = [
    (CHERRY, 24),
    (LEMON, 20),
    (ORANGE, 19),
    (DIAMOND, 21),
    (GRAPES, 15),
    (MELON, 11),
    (STAR, 10),
]

# Every symbol a generated grid may contain
ALL_SYMBOLS: frozenset[str] = frozenset(
    [symbol for symbol, _ in SYMBOL_WEIGHTS] + [DACHS]
)

# Symbols a guaranteed pair may be built from (never rare, never diamonds)
GUARANTEED_PAIR_SYMBOLS: list[str] = [CHERRY, LEMON, ORANGE, GRAPES, MELON, STAR]

# Rare symbol
DACHS_BASE_CHANCE = 1 / 150
DACHS_TRIPLE_PAYOUT = 15000
DACHS_PAIR_PAYOUT = 2500
DACHS_SINGLE_PAYOUT = 100

# Diamond free spins (evaluated on the grid before special items)
DIAMOND_TRIPLE_FREE_SPINS = 5
DIAMOND_PAIR_FREE_SPINS = 1

TRIPLE_PAYOUTS: dict[str, int] = {
    STAR: 500,
    MELON: 250,
    GRAPES: 150,
    ORANGE: 100,
    LEMON: 75,
    CHERRY: 50,
}
PAIR_PAYOUTS: dict[str, int] = {
    STAR: 50,
    MELON: 25,
    GRAPES: 15,
    ORANGE: 10,
    LEMON: 8,
    CHERRY: 5,
}
DEFAULT_TRIPLE_PAYOUT = 50
DEFAULT_PAIR_PAYOUT = 5

# Wild card optimisation ranks symbols by pair value; diamonds rank lowest
WILD_SYMBOL_VALUES: dict[str, int] = {**PAIR_PAYOUTS, DIAMOND: 1}

# Re-roll buffs (star_magnet, diamond_rush)
BUFF_REROLL_CHANCE = 0.66
SYMBOL_BOOST_CHANCE = 0.33

# Rare-chance buffs
LUCKY_CHARM_FACTOR = 2
DACHS_LOCATOR_FACTOR = 3
RAGE_MODE_LOSS_STACK = 5
RAGE_MODE_MAX_STACK = 100

# Payout buffs
WIN_MULTIPLIER_FACTOR = 2
SYMBOL_BOOST_FACTOR = 2
JACKPOT_BOOSTER_RATE = 1.25
GOLDEN_HOUR_RATE = 1.3
PROFIT_DOUBLER_THRESHOLD = 50
PROFIT_DOUBLER_FACTOR = 2

# Streaks
STREAK_THRESHOLD = 5
HOT_STREAK_BONUS = 500
COMEBACK_BONUS = 150
STREAK_MULTIPLIER_INCREMENT = 0.1
STREAK_MULTIPLIER_MAX = 3.0
COMBO_BONUSES: dict[int, int] = {2: 10, 3: 30, 4: 100}

# Insurance
INSURANCE_REFUND_RATE = 0.5

# Stake unlocks
UNLOCK_MAP: dict[int, str] = {20: "slots_20", 30: "slots_30", 50: "slots_50", 100: "slots_100"}
MULTIPLIER_MAP: dict[int, int] = {10: 1, 20: 2, 30: 3, 50: 5, 100: 10}
UNLOCK_PRICES: dict[str, int] = {
    "slots_20": 500,
    "slots_30": 2000,
    "slots_50": 2500,
    "slots_100": 3250,
    "slots_all": 4444,
}
MAX_FIXED_STAKE = 100

# Messages
SPIN_LOSS_MESSAGES: list[str] = [
    "No luck this time! 😢",
    "Next time!",
    "So close! Try again!",
    "Not your spin...",
]

LOSS_STREAK_WARNING_START = 10
LOSS_MESSAGES: dict[int, str] = {
    10: "😔 10 losses in a row - maybe take a break?",
    11: "🦡 11 losses - the badger is still hiding... a short break?",
    12: "🦡💤 12 losses - the badger is napping... a break could help!",
    13: "🦡🌙 13 losses - the badger dreams of winning... tomorrow maybe?",
    14: "🦡🍂 14 losses - the badger is gathering winter supplies... time for a break!",
    15: "🦡❄️ 15 losses - the badger is hibernating... come back later!",
    16: "🦡🏔️ 16 losses - the badger is deep in its burrow... more luck tomorrow?",
    17: "🦡🌌 17 losses - the badger ponders life... break recommended!",
    18: "🦡📚 18 losses - the badger is reading a book... you too? Break! 📖",
    19: "🦡🎮 19 losses - the badger is playing something else... you too? 🎮",
    20: "🦡☕ 20 losses - the badger sips coffee and relaxes... break, seriously! ☕",
}
LAST_FIXED_LOSS_THRESHOLD = max(LOSS_MESSAGES)
ROTATING_LOSS_MESSAGES: list[str] = [
    "🦡🛌 The badger is fast asleep... let it rest! 😴",
    "🦡🧘 The badger meditates... find your inner calm! 🧘",
    "🦡🎨 The badger paints a picture... creative break! 🎨",
    "🦡🏃 The badger goes jogging... move a bit too! 🏃",
    "🦡🌳 The badger enjoys nature... go outside! 🌳",
]
