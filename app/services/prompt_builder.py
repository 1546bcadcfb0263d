"""
Prompt and response-schema builders, one per gateway action.
Pure functions: given a validated payload, return a PromptRequest ready for the model client.
Schemas use the Gemini OpenAPI subset (OBJECT, ARRAY, STRING, NUMBER).
"""
import base64
import binascii
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from app.schemas.ai import (
    Action,
    AnalyzeFoodPayload,
    CalculateNutritionPayload,
    ChatPayload,
    ClinicalSummaryPayload,
    MealPlanPayload,
    RecipesPayload,
    ShoppingListPayload,
)


@dataclass(frozen=True)
class InlineImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class PromptRequest:
    """Model-ready request: user content (text and/or inline images), optional system instruction and schema."""

    content: tuple[str | InlineImage, ...]
    system_instruction: str | None = None
    response_schema: dict[str, Any] | None = field(default=None, hash=False)

    @classmethod
    def text(cls, prompt: str, system_instruction: str | None = None, response_schema: dict | None = None) -> "PromptRequest":
        return cls(content=(prompt,), system_instruction=system_instruction, response_schema=response_schema)


def _string(description: str | None = None, enum: list[str] | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"type": "STRING"}
    if description:
        out["description"] = description
    if enum:
        out["enum"] = enum
    return out


def _number(description: str | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"type": "NUMBER"}
    if description:
        out["description"] = description
    return out


def _string_list(description: str | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"type": "ARRAY", "items": {"type": "STRING"}}
    if description:
        out["description"] = description
    return out


def _ingredient_list(description: str | None = None, quantity_description: str | None = None,
                     unit_description: str | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": {
                "name": _string(),
                "quantity": _string(quantity_description),
                "unit": _string(unit_description),
            },
            "required": ["name", "quantity", "unit"],
        },
    }
    if description:
        out["description"] = description
    return out


# ---- chat ----

CHAT_SYSTEM_INSTRUCTION = """Você é a NutriAI, uma assistente de nutrição amigável e motivadora do aplicativo NutriSmart.

PERSONALIDADE:
- Seja acolhedora e use emojis ocasionalmente
- Respostas concisas (máximo 3 parágrafos curtos)
- Tom conversacional e encorajador
- Sempre em Português do Brasil

CAPACIDADES:
- Responder dúvidas sobre nutrição, dietas e alimentos
- Sugerir refeições baseadas nas calorias restantes do usuário
- Analisar o progresso diário do usuário
- Dar dicas práticas e motivacionais
- Não diagnosticar doenças ou prescrever medicamentos"""


def _fmt(value: float) -> str:
    """Render 2000.0 as 2000 and 12.5 as 12.5."""
    return f"{value:g}"


def build_chat(payload: ChatPayload) -> PromptRequest:
    system = CHAT_SYSTEM_INSTRUCTION

    if payload.context:
        user = payload.context.user
        stats = payload.context.stats
        meals_summary = ", ".join(f"{m.name} ({_fmt(m.calories)}kcal)" for m in payload.context.recent_meals)
        calories_remaining = user.daily_calorie_goal - stats.calories_consumed
        water_progress = round(stats.water_consumed / user.daily_water_goal * 100) if user.daily_water_goal > 0 else 0

        system += f"""

DADOS DO USUÁRIO (use para personalizar):
- Nome: {user.name}
- Objetivo: {user.goal or 'Saúde Geral'}
- Meta calórica: {_fmt(user.daily_calorie_goal)} kcal/dia
- Consumido hoje: {_fmt(stats.calories_consumed)} kcal
- Calorias restantes: {_fmt(calories_remaining)} kcal
- Água: {_fmt(stats.water_consumed)}ml de {_fmt(user.daily_water_goal)}ml ({water_progress}%)
- Exercício queimado: {_fmt(stats.calories_burned)} kcal
- Refeições hoje: {meals_summary or 'Nenhuma ainda'}"""

        if user.is_clinical_mode and user.clinical_settings:
            clinical = user.clinical_settings
            system += f"""

MODO CLÍNICO ATIVO ({clinical.medication}):
- O usuário está em tratamento médico para perda de peso.
- MEDICAÇÃO: {clinical.medication} ({clinical.dosage}).
- FOCO CRÍTICO: Priorize proteína em TODAS as refeições para evitar perda de massa magra.
- HIDRATAÇÃO: Enfatize beber muita água para evitar efeitos colaterais.
- EFEITOS COLATERAIS: Se o usuário relatar náusea/enjoo, sugira alimentos frios, secos, gengibre e comer devagar.
- FRACIONAMENTO: Sugira refeições menores e mais frequentes se houver saciedade precoce.
- EVITAR: Alimentos muito gordurosos ou muito doces que podem piorar o enjoo com a medicação.
- Seja empática com possíveis dificuldades de adaptação ao medicamento."""

    if payload.conversation_history:
        system += f"""

HISTÓRICO DA CONVERSA:
{payload.conversation_history}"""

    return PromptRequest.text(payload.message, system_instruction=system)


# ---- analyze-food ----

FOOD_ANALYSIS_SYSTEM_INSTRUCTION = """Você é um Especialista em Nutrição Computacional. Sua tarefa é analisar fotos de refeições e extrair: ingredientes, pesos estimados e macros (Calorias, Proteínas, Carboidratos, Gorduras).

Regras Estritas:
1. Retorne apenas um JSON puro, sem markdown ou explicações
2. Use bases nutricionais como TACO (Brasil) ou USDA para os cálculos
3. Estime o peso de cada porção baseado em referências visuais (tamanho do prato, utensílios)
4. Se a imagem não for de comida, retorne {"error": "not_food"}
5. Seja preciso nos valores nutricionais"""

FOOD_ANALYSIS_PROMPT = (
    "Analise esta imagem de comida. Identifique o prato principal, estime os ingredientes visíveis "
    "com suas quantidades aproximadas e calcule os valores nutricionais totais."
)

NOT_FOOD = "not_food"

FOOD_ANALYSIS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": _string("Nome curto e descritivo do prato em Português"),
        "calories": _number("Estimativa de calorias totais (kcal)"),
        "protein": _number("Proteínas totais em gramas"),
        "carbs": _number("Carboidratos totais em gramas"),
        "fats": _number("Gorduras totais em gramas"),
        "weight": _number("Estimativa do peso total da porção em gramas"),
        "error": _string(f'Se não for comida, retorne "{NOT_FOOD}"'),
        "ingredients": _ingredient_list(
            "Lista estimada de ingredientes que compõem o prato",
            quantity_description="Número em formato string (ex: '100', '1')",
            unit_description="Unidade (g, ml, colher, unidade, fatia)",
        ),
    },
    "required": ["name", "calories", "protein", "carbs", "fats", "weight", "ingredients"],
}


def decode_image(payload: AnalyzeFoodPayload) -> bytes:
    """Decode the submitted base64 image. Accepts a data: URL prefix. Raises ValueError when not valid base64."""
    data = payload.base64_data
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("base64Data is not valid base64") from e


def build_analyze_food(payload: AnalyzeFoodPayload, image_bytes: bytes | None = None) -> PromptRequest:
    if image_bytes is None:
        image_bytes = decode_image(payload)
    return PromptRequest(
        content=(InlineImage(data=image_bytes, mime_type=payload.mime_type), FOOD_ANALYSIS_PROMPT),
        system_instruction=FOOD_ANALYSIS_SYSTEM_INSTRUCTION,
        response_schema=FOOD_ANALYSIS_SCHEMA,
    )


# ---- calculate-nutrition ----

NUTRITION_TOTALS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "calories": _number(),
        "protein": _number(),
        "carbs": _number(),
        "fats": _number(),
    },
    "required": ["calories", "protein", "carbs", "fats"],
}


def build_calculate_nutrition(payload: CalculateNutritionPayload) -> PromptRequest:
    items = ", ".join(f"{f.quantity}{f.unit} de {f.name}" for f in payload.food_items)
    prompt = (
        f"Calcule o total nutricional aproximado para a seguinte lista de alimentos: {items}. "
        "Retorne o total somado."
    )
    return PromptRequest.text(prompt, response_schema=NUTRITION_TOTALS_SCHEMA)


# ---- generate-meal-plan ----

MEAL_TYPES = {
    3: ["Café da Manhã", "Almoço", "Jantar"],
    4: ["Café da Manhã", "Almoço", "Lanche", "Jantar"],
    5: ["Café da Manhã", "Lanche da Manhã", "Almoço", "Lanche da Tarde", "Jantar"],
}

DIET_DESCRIPTIONS = {
    "normal": "alimentação balanceada comum",
    "vegetarian": "vegetariano (sem carne, mas permite ovos e laticínios)",
    "vegan": "vegano (sem nenhum produto animal)",
    "lowCarb": "low carb (menos de 50g de carboidratos por dia)",
    "highProtein": "alto teor proteico (foco em proteínas magras)",
}

COOKING_DESCRIPTIONS = {
    "quick": "receitas rápidas (máximo 20 minutos)",
    "normal": "tempo de preparo normal (até 40 minutos)",
    "elaborate": "receitas elaboradas (pode levar mais tempo)",
}

MEAL_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "meals": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": _string("Tipo da refeição"),
                    "name": _string("Nome da refeição/receita"),
                    "calories": _number(),
                    "protein": _number(),
                    "carbs": _number(),
                    "fats": _number(),
                    "prepTime": _number("Tempo de preparo em minutos"),
                    "ingredients": _ingredient_list(),
                    "instructions": _string_list("Passos do modo de preparo"),
                },
                "required": [
                    "type", "name", "calories", "protein", "carbs", "fats",
                    "ingredients", "instructions", "prepTime",
                ],
            },
        }
    },
    "required": ["meals"],
}


def build_meal_plan(payload: MealPlanPayload) -> PromptRequest:
    user = payload.user
    prefs = payload.preferences
    meal_types = MEAL_TYPES.get(prefs.meals_per_day, MEAL_TYPES[5])
    allergies = ", ".join(prefs.allergies) if prefs.allergies else "Nenhuma"
    disliked = ", ".join(prefs.disliked_foods) if prefs.disliked_foods else "Nenhum"

    prompt = f"""Crie um plano alimentar para {payload.day_name} com as seguintes especificações:

PERFIL DO USUÁRIO:
- Meta calórica: {_fmt(user.daily_calorie_goal)} kcal/dia
- Meta de proteína: {_fmt(user.macros.protein)}g
- Objetivo: {user.goal or 'Saúde geral'}

PREFERÊNCIAS:
- Tipo de dieta: {DIET_DESCRIPTIONS.get(prefs.diet_type, 'normal')}
- Restrições alimentares: {allergies}
- Alimentos que não gosta: {disliked}
- Tempo de preparo: {COOKING_DESCRIPTIONS.get(prefs.cooking_time, 'normal')}

Crie {prefs.meals_per_day} refeições: {', '.join(meal_types)}.
Cada refeição deve ter ingredientes específicos com quantidades em gramas/ml e instruções de preparo.
As calorias totais do dia devem somar aproximadamente {_fmt(user.daily_calorie_goal)} kcal."""

    if user.is_clinical_mode:
        medication = (user.clinical_settings and user.clinical_settings.medication) or "Tratamento"
        prompt += f"""

ATENÇÃO - MODO CLÍNICO ({medication}):
Este plano deve ser adaptado para quem usa medicação para perda de peso (GLP-1).
1. PRIORIDADE TOTAL EM PROTEÍNA: Garanta que a meta de proteína seja atingida ou superada para preservar massa magra.
2. ALTA SACIEDADE COM POUCO VOLUME: Use alimentos densos em nutrientes, pois o apetite pode estar reduzido.
3. INGESTÃO DE FIBRAS: Inclua fibras para auxiliar o intestino, mas evite excesso de gordura na mesma refeição.
4. EVITAR NÁUSEAS: Evite refeições muito volumosas ou muito gordurosas.
5. HIDRATAÇÃO: Sugira acompanhar com água (exceto durante a refeição se causar plenitude gástrica)."""

    return PromptRequest.text(prompt, response_schema=MEAL_PLAN_SCHEMA)


# ---- generate-recipes ----

RECIPE_DIFFICULTIES = ["Fácil", "Médio", "Difícil"]

RECIPES_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "recipes": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": _string(),
                    "calories": _number(),
                    "timeMinutes": _number(),
                    "difficulty": _string(enum=RECIPE_DIFFICULTIES),
                    "tags": _string_list(),
                    "englishSearchTerm": _string(
                        "A simple english term to search for an image of this food (e.g. 'chicken salad', 'pasta')"
                    ),
                },
                "required": ["title", "calories", "timeMinutes", "difficulty", "tags", "englishSearchTerm"],
            },
        }
    },
}


def build_recipes(payload: RecipesPayload) -> PromptRequest:
    prompt = f"""Eu tenho os seguintes ingredientes: {payload.ingredients}.
Sugira 3 receitas criativas e saudáveis que posso fazer com eles (assuma que tenho básicos como sal, óleo, água).
Retorne um JSON."""
    return PromptRequest.text(prompt, response_schema=RECIPES_SCHEMA)


# ---- generate-shopping-list ----

SHOPPING_SECTIONS = [
    "Hortifruti", "Açougue", "Laticínios", "Mercearia", "Bebidas", "Congelados", "Padaria", "Outros",
]

SHOPPING_LIST_SCHEMA = {
    "type": "OBJECT",
    "properties": {section: _string_list() for section in SHOPPING_SECTIONS},
}


def build_shopping_list(payload: ShoppingListPayload) -> PromptRequest:
    items = "\n".join(f"- {i}" for i in payload.ingredients)
    prompt = f"""Você é um organizador de lista de compras. Receba a lista de ingredientes abaixo e agrupe-os por setor de supermercado.

INGREDIENTES:
{items}

Retorne um JSON válido agrupando os itens por categoria. Mantenha as quantidades originais quando disponíveis. Remova categorias vazias. Padronize nomes (ex: "2 bananas" em vez de "banana (2)"). Use português brasileiro."""
    return PromptRequest.text(prompt, response_schema=SHOPPING_LIST_SCHEMA)


# ---- generate-clinical-summary ----

def summarize_symptoms(payload: ClinicalSummaryPayload) -> str:
    """'nausea: 3x, fadiga: 1x', most frequent first; ties keep first-seen order."""
    counts = Counter(s.symptom for s in payload.symptoms)
    return ", ".join(f"{symptom}: {count}x" for symptom, count in counts.most_common())


def build_clinical_summary(payload: ClinicalSummaryPayload) -> PromptRequest:
    prompt = f"""Você é um relator médico especializado em acompanhamento de pacientes em uso de agonistas GLP-1 para perda de peso.

DADOS DO PACIENTE:
- Medicamento: {payload.medication or 'Não informado'}
- Dosagem: {payload.dosage or 'Não informada'}
- Início do tratamento: {payload.start_date or 'Não informado'}
- Adesão à meta proteica: {_fmt(payload.protein_adherence)}% dos dias
- Sintomas registrados: {summarize_symptoms(payload) or 'Nenhum sintoma registrado'}

Com base nesses dados, gere um resumo clínico de 2-3 parágrafos para um endocrinologista ou nutrólogo. Seja objetivo e use linguagem técnica. Mencione:
1. Avaliação geral da adesão alimentar
2. Padrão dos efeitos colaterais (se houver)
3. Recomendações para a próxima consulta

Retorne apenas o texto do resumo, sem formatação especial."""
    return PromptRequest.text(prompt)


BUILDERS: dict[Action, Callable[[Any], PromptRequest]] = {
    Action.CHAT: build_chat,
    Action.ANALYZE_FOOD: build_analyze_food,
    Action.CALCULATE_NUTRITION: build_calculate_nutrition,
    Action.GENERATE_MEAL_PLAN: build_meal_plan,
    Action.GENERATE_RECIPES: build_recipes,
    Action.GENERATE_SHOPPING_LIST: build_shopping_list,
    Action.GENERATE_CLINICAL_SUMMARY: build_clinical_summary,
}
