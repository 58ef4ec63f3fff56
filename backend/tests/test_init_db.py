from news_analyzer.init_db import init_database
from news_analyzer.utils.llm_config import (
    DEFAULT_PROMPT_TEMPLATE,
    get_default_prompt_template,
    get_llm_config,
    list_llm_profiles,
    list_prompt_templates,
    save_default_prompt_template,
)


def test_seeds_defaults_once(engine, session_factory):
    init_database(session_factory, bind=engine)

    assert get_default_prompt_template(session_factory) == DEFAULT_PROMPT_TEMPLATE
    assert get_llm_config(session_factory).provider in ("openai", "ollama")

    save_default_prompt_template("Custom: {content}", session_factory)
    init_database(session_factory, bind=engine)

    # Existing rows are left alone
    assert get_default_prompt_template(session_factory) == "Custom: {content}"
    assert len(list_llm_profiles(session_factory)) == 1
    assert len(list_prompt_templates(session_factory)) == 1
