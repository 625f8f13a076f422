"""Тесты извлечения ингредиентов из текста этикетки."""
from spoils.ingredients.extractor import (
    extract_ingredients,
    extract_label_ingredients,
    parse_ingredient_entry,
    split_ingredient_list,
)


class TestExtractIngredients:
    """extract_ingredients — маркер, граница предложения, разбиение."""

    def test_basic_label(self) -> None:
        text = "Ingredients: Water, Sugar, Salt. Contains 2% milk."
        assert extract_ingredients(text) == ["Water", "Sugar", "Salt"]

    def test_no_marker_returns_empty(self) -> None:
        assert extract_ingredients("Best before 2026. Keep refrigerated.") == []

    def test_empty_text(self) -> None:
        assert extract_ingredients("") == []
        assert extract_ingredients(None) == []

    def test_marker_case_insensitive(self) -> None:
        assert extract_ingredients("ACTIVE INGREDIENTS: X, Y") == ["X", "Y"]

    def test_marker_priority(self) -> None:
        """Маркер выше в списке побеждает, даже если стоит дальше в тексте."""
        text = "Contains: Milk. Ingredients: Oats, Honey"
        assert extract_ingredients(text) == ["Oats", "Honey"]

    def test_contains_marker_alone(self) -> None:
        assert extract_ingredients("Contains: Soy, Wheat") == ["Soy", "Wheat"]

    def test_other_ingredients_marker(self) -> None:
        text = "Supplement facts. Other Ingredients: Gelatin, Rice Flour."
        assert extract_ingredients(text) == ["Gelatin", "Rice Flour"]

    def test_decimal_does_not_end_sentence(self) -> None:
        text = "Ingredients: Water, Salt 0.5%, Vinegar."
        assert extract_ingredients(text) == ["Water", "Salt 0.5%", "Vinegar"]

    def test_lowercase_after_period_does_not_end_sentence(self) -> None:
        text = "Ingredients: Flour, Vit. b12, Yeast. Made in Italy."
        assert extract_ingredients(text) == ["Flour", "Vit. b12", "Yeast"]

    def test_semicolons(self) -> None:
        assert extract_ingredients("Ingredients: Rice; Water; Salt") == ["Rice", "Water", "Salt"]

    def test_deduplicates_case_insensitive(self) -> None:
        assert extract_ingredients("Ingredients: Sugar, salt, SUGAR") == ["Sugar", "salt"]

    def test_nested_list_kept_whole(self) -> None:
        text = "Ingredients: Chocolate (Sugar, Cocoa Butter), Almonds."
        assert extract_ingredients(text) == ["Chocolate (Sugar, Cocoa Butter)", "Almonds"]

    def test_marker_without_list(self) -> None:
        assert extract_ingredients("Ingredients:") == []


class TestExtractLabelIngredients:
    """extract_label_ingredients — ingredients_text каталога."""

    def test_marker_clause_wins(self) -> None:
        text = "Ingredients: Water, Sugar. Contains: milk."
        assert extract_label_ingredients(text) == ["Water", "Sugar"]

    def test_plain_list_is_split_whole(self) -> None:
        assert extract_label_ingredients("water, sugar, salt") == ["water", "sugar", "salt"]

    def test_allergen_tail_is_cut(self) -> None:
        text = "Wheat flour, sugar, salt. Contains: gluten."
        assert extract_label_ingredients(text) == ["Wheat flour", "sugar", "salt"]

    def test_leading_contains_is_the_list(self) -> None:
        assert extract_label_ingredients("Contains: Soy, Wheat") == ["Soy", "Wheat"]

    def test_empty(self) -> None:
        assert extract_label_ingredients(None) == []
        assert extract_label_ingredients("") == []


class TestSplitIngredientList:
    def test_drops_empty_fragments(self) -> None:
        assert split_ingredient_list("a,, b ,") == ["a", "b"]

    def test_strips_trailing_punctuation(self) -> None:
        assert split_ingredient_list("salt*, pepper.") == ["salt", "pepper"]

    def test_unbalanced_closing_bracket(self) -> None:
        assert split_ingredient_list("a), b") == ["a)", "b"]


class TestParseIngredientEntry:
    """parse_ingredient_entry — имя и вложенный список."""

    def test_plain_name(self) -> None:
        assert parse_ingredient_entry("Salt") == ("Salt", None)

    def test_nested_list(self) -> None:
        assert parse_ingredient_entry("Chocolate (sugar, cocoa butter)") == (
            "Chocolate", "sugar, cocoa butter",
        )

    def test_deeply_nested(self) -> None:
        assert parse_ingredient_entry("Chocolate (sugar, emulsifier (soy lecithin))") == (
            "Chocolate", "sugar, emulsifier (soy lecithin)",
        )

    def test_percentage_is_qualifier(self) -> None:
        assert parse_ingredient_entry("Milk (2%)") == ("Milk", None)

    def test_e_number_is_qualifier(self) -> None:
        assert parse_ingredient_entry("Lecithin (E322)") == ("Lecithin", None)

    def test_square_brackets(self) -> None:
        assert parse_ingredient_entry("Pasta [durum wheat, water]") == ("Pasta", "durum wheat, water")

    def test_empty_brackets(self) -> None:
        assert parse_ingredient_entry("Spices ()") == ("Spices", None)

    def test_without_name(self) -> None:
        assert parse_ingredient_entry("(sugar, salt)") == ("sugar, salt", None)
