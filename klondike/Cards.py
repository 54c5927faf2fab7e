import random

COLUMN_COUNT = 7
FOUNDATION_COUNT = 4
DECK_SIZE = 52


class Card:
    NUM_PER_SUIT = 13
    SUITS = "♠♥♣♦"
    SUIT_NAMES = ("spades", "hearts", "clubs", "diamonds")
    NUMS = ("A ", "2 ", "3 ", "4 ", "5 ", "6 ", "7 ", "8 ", "9 ", "10", "J ", "Q ", "K ")

    def __init__(self, id):
        self.id = id
        self.hidden = True

    def __str__(self):
        if self.hidden:
            return str(self.id) + "H"
        return str(self.id)

    def __repr__(self):
        return self.__str__()


def cardSuit(cardId: int) -> int:
    return cardId // Card.NUM_PER_SUIT


def cardNum(cardId: int) -> int:
    return cardId % Card.NUM_PER_SUIT


def cardRank(cardId: int) -> int:
    return cardId % Card.NUM_PER_SUIT + 1


def isRed(cardId: int) -> bool:
    return cardSuit(cardId) % 2 == 1


def cardLabel(cardId: int) -> str:
    return Card.NUMS[cardNum(cardId)].strip() + Card.SUITS[cardSuit(cardId)]


def initCards(seed=None):
    lst = [Card(i) for i in range(DECK_SIZE)]
    random.Random(seed).shuffle(lst)
    return lst


def dealKlondike(cards):
    """
    Deal a Klondike layout from the end of `cards`.

    :param cards: the shuffled deck, consumed from the end
    :return: a pair of (tableau columns, stock); the last card of each list is its top
    """
    cards = list(cards)
    tableau = [[] for _ in range(COLUMN_COUNT)]
    for row in range(COLUMN_COUNT):
        for col in range(row, COLUMN_COUNT):
            card = cards.pop()
            card.hidden = col != row
            tableau[col].append(card)
    for card in cards:
        card.hidden = True
    return tableau, cards


def decodeStack(code: str):
    if code.startswith("empty"):
        return []
    cards = code.split(",")

    def decodeCard(s: str):
        data = s.strip().split(" ")
        cardId = int(data[0])
        if cardId < 0 or cardId >= DECK_SIZE:
            raise ValueError(f"card id out of range: {cardId}")
        hidden = data[1] == "1"
        c = Card(cardId)
        c.hidden = hidden
        return c

    return list(map(decodeCard, cards))


def encodeStack(base: list):
    if len(base) == 0:
        return "empty"

    def encodeCard(card: Card):
        s = str(card.id)
        if card.hidden:
            return s + " 1"
        else:
            return s + " 0"

    return ",".join(map(encodeCard, base))


class GameConfig:
    def __init__(self):
        self.seed = None
        self.drawMode = 1
        self.gameCode = None

    def isDrawThree(self):
        return self.drawMode == 3

    @staticmethod
    def loadFromFile(path):
        config = GameConfig()
        try:
            with open(path, encoding="utf-8") as f:
                lines = f.readlines()
        except OSError:
            return config
        for l in lines:
            l = l.strip()
            if len(l) == 0 or l.startswith("#") or "=" not in l:
                continue
            (k, v) = l.split("=", 1)
            k = k.strip()
            v = v.strip()
            if v == "None":
                v = None
            else:
                try:
                    v = int(v)
                except ValueError:
                    pass
            config.__setattr__(k, v)
        if config.drawMode not in (1, 3):
            config.drawMode = 1
        return config

    def saveToFile(self, path):
        with open(path, "w+", encoding="utf-8") as f:
            for k, v in self.__dict__.items():
                f.write(f"{k}={str(v)}\n")

    def initDeck(self):
        """The deck to deal from: the fixed `gameCode` deal if it decodes, otherwise a seeded shuffle."""
        if self.gameCode is not None:
            try:
                cards = decodeStack(self.gameCode)
            except (ValueError, IndexError):
                cards = None
            if cards is not None and len(cards) == DECK_SIZE and len({c.id for c in cards}) == DECK_SIZE:
                return cards
        return initCards(self.seed)
