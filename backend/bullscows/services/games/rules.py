from typing import Tuple


def bulls_and_cows(secret: str, guess: str) -> Tuple[int, int]:
    """Score a guess against a secret.

    A bull is a digit in the right position; a cow is a digit present in the
    secret at another position. Both strings hold 4 distinct digits, so no
    digit can be counted twice.
    """
    bulls = 0
    cows = 0
    for i, digit in enumerate(guess):
        if secret[i] == digit:
            bulls += 1
        elif digit in secret:
            cows += 1
    return bulls, cows


def flip_seat(seat: int) -> int:
    return 2 if seat == 1 else 1


def is_win(bulls: int) -> bool:
    return bulls == 4
