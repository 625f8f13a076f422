"""Извлечение списка ингредиентов из свободного текста этикетки."""
import re

# Порядок важен: побеждает первый найденный маркер из списка
INGREDIENT_MARKERS: tuple[str, ...] = (
    "Ingredients:",
    "Active Ingredients:",
    "Other Ingredients:",
    "Contains:",
)
_LIST_MARKERS = INGREDIENT_MARKERS[:3]
_ALLERGEN_MARKER = INGREDIENT_MARKERS[3]

_SEPARATORS = ",;"
_OPENING = "([{"
_CLOSING = ")]}"
_TRAILING_PUNCTUATION = ".,;:!?*"

# Точка, пробелы и следующий непробельный символ: кандидат на границу предложения
_SENTENCE_END_RE = re.compile(r"\.\s+(\S)")
_NESTED_RE = re.compile(r"^(?P<name>[^(\[{]*?)\s*[(\[{](?P<nested>.*)[)\]}]\s*$", re.DOTALL)
# Скобки с долей/количеством это уточнение, а не вложенный список: "Milk (2%)", "(E322)"
_QUALIFIER_RE = re.compile(r"^\s*(?:\d+(?:[.,]\d+)?\s*%?|<?\s*\d+(?:[.,]\d+)?\s*%\s*\w*|e\d{3}[a-z]?)\s*$", re.IGNORECASE)


def _find_clause(text: str) -> str | None:
    """Текст после первого найденного маркера до границы предложения."""
    lowered = text.casefold()
    for marker in INGREDIENT_MARKERS:
        idx = lowered.find(marker.casefold())
        if idx == -1:
            continue
        tail = text[idx + len(marker):]
        for match in _SENTENCE_END_RE.finditer(tail):
            if match.group(1).isupper():
                return tail[:match.start()]
        return tail
    return None


def _clean_fragment(fragment: str) -> str:
    """Обрезать пробелы и хвостовую пунктуацию."""
    return fragment.strip().rstrip(_TRAILING_PUNCTUATION).strip()


def split_ingredient_list(clause: str) -> list[str]:
    """
    Разбить список по запятым и точкам с запятой верхнего уровня.
    Разделители внутри скобок не режут: "Chocolate (sugar, cocoa)" — одна позиция.
    Дубликаты (без учёта регистра) отбрасываются, порядок сохраняется.
    """
    fragments: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in clause:
        if ch in _OPENING:
            depth += 1
        elif ch in _CLOSING:
            depth = max(0, depth - 1)
        elif ch in _SEPARATORS and depth == 0:
            fragments.append("".join(current))
            current = []
            continue
        current.append(ch)
    fragments.append("".join(current))

    result: list[str] = []
    seen: set[str] = set()
    for fragment in fragments:
        cleaned = _clean_fragment(fragment)
        if not cleaned:
            continue
        key = cleaned.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


def extract_ingredients(text: str | None) -> list[str]:
    """
    Извлечь упорядоченный список сырых имён ингредиентов.

    Ищет маркер ("Ingredients:", "Active Ingredients:", "Other Ingredients:",
    "Contains:") без учёта регистра, берёт текст до конца предложения
    и режет его на позиции. Нет маркера — пустой список, это не ошибка.
    """
    if not text:
        return []
    clause = _find_clause(text)
    if clause is None:
        return []
    return split_ingredient_list(clause)


def extract_label_ingredients(text: str | None) -> list[str]:
    """
    Ингредиенты из ingredients_text каталога.

    Есть маркер списка ("Ingredients:" и родственные) — работает как extract_ingredients.
    Без него каталог отдаёт сам список, часто с хвостом "Contains: ..." про аллергены:
    режется текст до этого хвоста. "Contains:" в начале текста считается самим списком.
    """
    if not text:
        return []
    lowered = text.casefold()
    if any(marker.casefold() in lowered for marker in _LIST_MARKERS):
        return extract_ingredients(text)

    idx = lowered.find(_ALLERGEN_MARKER.casefold())
    if idx == -1:
        return split_ingredient_list(text)
    if text[:idx].strip(" .,;:"):
        return split_ingredient_list(text[:idx])
    return extract_ingredients(text)


def parse_ingredient_entry(raw: str) -> tuple[str, str | None]:
    """
    Разделить позицию на имя и вложенный список.
    "Chocolate (sugar, cocoa butter)" → ("Chocolate", "sugar, cocoa butter").
    "Milk (2%)" → ("Milk", None): доли и E-коды считаются уточнением.
    """
    raw = raw.strip()
    match = _NESTED_RE.match(raw)
    if not match:
        return _clean_fragment(raw), None

    name = _clean_fragment(match.group("name"))
    nested = match.group("nested").strip()
    if not name:
        # "(sugar, salt)" без имени не составной ингредиент
        return _clean_fragment(raw.strip("()[]{} ")), None
    if not nested or _QUALIFIER_RE.match(nested):
        return name, None
    return name, nested
