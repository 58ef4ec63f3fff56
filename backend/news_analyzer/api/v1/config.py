from fastapi import APIRouter, Body, Depends, status
from typing import List, Optional

from news_analyzer.api.deps import ERROR_RESPONSES, get_llm_client, get_orchestrator
from news_analyzer.schemas import (
    LLMConfig,
    LLMConfigResponse,
    LLMProfileCreate,
    LLMProfileResponse,
    LLMTestResponse,
    MessageResponse,
    PromptTemplateBody,
    PromptTemplateCreate,
    PromptTemplateResponse,
)
from news_analyzer.services.llm_client import LLMClient
from news_analyzer.services.orchestrator import TaskOrchestrator
from news_analyzer.utils import llm_config as store

router = APIRouter(prefix="/config", tags=["config"], responses=ERROR_RESPONSES)


def _masked(config: LLMConfig) -> LLMConfigResponse:
    return LLMConfigResponse(
        provider=config.provider,
        endpoint=config.endpoint,
        api_key_set=bool(config.api_key),
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )


@router.get("/llm", response_model=LLMConfigResponse)
async def read_llm_config(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Get the active LLM configuration (the API key is never returned)"""
    return _masked(store.get_llm_config(orchestrator.session_factory))


@router.put("/llm", response_model=LLMConfigResponse)
async def update_llm_config(
    config_update: LLMConfig,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """
    Replace the active LLM configuration

    Omitting `api_key` keeps the stored one. New tasks pick the change up on
    their next classification call.
    """
    current = store.get_llm_config(orchestrator.session_factory)
    if config_update.api_key is None:
        config_update = config_update.model_copy(update={"api_key": current.api_key})

    saved = store.save_llm_config(config_update, orchestrator.session_factory)
    return _masked(saved)


@router.post("/llm/test", response_model=LLMTestResponse)
async def test_llm_connection(
    config: Optional[LLMConfig] = Body(None),
    llm: LLMClient = Depends(get_llm_client)
):
    """
    Send a short prompt to an LLM endpoint

    Without a body the active configuration is tested.
    """
    return LLMTestResponse(**await llm.test_connection(config))


@router.get("/llm-configs", response_model=List[LLMProfileResponse])
async def list_llm_configs(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """All stored LLM configurations, most recently updated first"""
    return store.list_llm_profiles(orchestrator.session_factory)


@router.post("/llm-configs", response_model=LLMProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_llm_config(
    body: LLMProfileCreate,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    return store.create_llm_profile(body, orchestrator.session_factory)


@router.put("/llm-configs/{profile_id}", response_model=LLMProfileResponse)
async def update_llm_profile(
    profile_id: str,
    body: LLMProfileCreate,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Replace a stored configuration; omitting `api_key` keeps the stored one"""
    return store.update_llm_profile(profile_id, body, orchestrator.session_factory)


@router.delete("/llm-configs/{profile_id}", response_model=MessageResponse)
async def delete_llm_config(
    profile_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    store.delete_llm_profile(profile_id, orchestrator.session_factory)
    return MessageResponse(message=f"LLM configuration {profile_id} deleted")


@router.post("/llm-configs/{profile_id}/toggle", response_model=LLMProfileResponse)
async def toggle_llm_config(
    profile_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Enable or disable a configuration; the newest enabled one is active"""
    return store.toggle_llm_profile(profile_id, orchestrator.session_factory)


@router.get("/prompt-template", response_model=PromptTemplateBody)
async def read_prompt_template(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Default prompt template used when a task is submitted without one"""
    return PromptTemplateBody(template=store.get_default_prompt_template(orchestrator.session_factory))


@router.put("/prompt-template", response_model=PromptTemplateBody)
async def update_prompt_template(
    body: PromptTemplateBody,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Replace the default prompt template's text"""
    return PromptTemplateBody(template=store.save_default_prompt_template(body.template, orchestrator.session_factory))


@router.get("/prompt-templates", response_model=List[PromptTemplateResponse])
async def list_prompt_templates(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Stored templates, the default first"""
    return store.list_prompt_templates(orchestrator.session_factory)


@router.post("/prompt-templates", response_model=PromptTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_prompt_template(
    body: PromptTemplateCreate,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Store a template; `is_default` takes the flag away from the previous default"""
    return store.create_prompt_template(body, orchestrator.session_factory)


@router.put("/prompt-templates/{template_id}", response_model=PromptTemplateResponse)
async def replace_prompt_template(
    template_id: str,
    body: PromptTemplateCreate,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    return store.update_prompt_template(template_id, body, orchestrator.session_factory)


@router.delete("/prompt-templates/{template_id}", response_model=MessageResponse)
async def delete_prompt_template(
    template_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    store.delete_prompt_template(template_id, orchestrator.session_factory)
    return MessageResponse(message=f"Prompt template {template_id} deleted")
