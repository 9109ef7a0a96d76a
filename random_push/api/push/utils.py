import math
import random
from ...common.exceptions import InvalidArgumentError

def partition(total_amount: int, count: int) -> list[int]:
    """총액을 count만큼 랜덤하게 분배

    마지막을 제외한 금액은 (남은 금액 / count) 범위에서 뽑아 11을 더한 뒤
    10원 단위로 자릅니다. 나눗셈과 나머지는 0 방향으로 버림하므로 남은 금액이
    음수가 되어도 같은 규칙을 따릅니다. 마지막 금액은 남은 금액 전부이므로 총합은
    항상 total_amount와 같지만, 총액이 인원수에 비해 작으면 0 이하가 될 수 있습니다.
    """
    if count <= 0 or total_amount <= 0:
        raise InvalidArgumentError("Invalid input values")

    amounts = []
    remaining = total_amount

    for i in range(count):
        if i == count - 1:
            amounts.append(remaining)
            continue

        price = int(random.random() * int(remaining / count)) + 11
        price -= int(math.fmod(price, 10))
        remaining -= price
        amounts.append(price)

    return amounts
