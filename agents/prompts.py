"""
Prompt templates for each generation step.

Builders are pure: they read the caller's brief and earlier step outputs
from the PipelineContext and return a (system, user) prompt pair. Earlier
outputs are embedded pretty-printed so the model sees the exact JSON it
is building on.
"""
import json
from typing import Any, NamedTuple

from agents.context import PipelineContext, StepId


class PromptPair(NamedTuple):
    system_prompt: str
    user_prompt: str


JSON_ONLY = "Respond with a single JSON object only. No markdown, no commentary."


def format_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _optional_lines(*pairs: tuple[str, Any]) -> str:
    """Render "Label: value" lines, skipping empty values."""
    lines = []
    for label, value in pairs:
        if value in (None, "", [], {}):
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        elif isinstance(value, dict):
            value = format_json(value)
        lines.append(f"{label}: {value}")
    return "\n".join(lines)


def _section(title: str, value: Any) -> str:
    return f"## {title}\n```json\n{format_json(value)}\n```"


ARCHITECTURE_SYSTEM_PROMPT = f"""You are a professional website architect. Analyze business descriptions and design optimal website structures.

Your responsibilities:
1. Analyze business type and target audience
2. Design an appropriate page hierarchy
3. Plan user journey and navigation flow
4. Recommend essential pages and sections
5. Apply SEO best practices

Return JSON in this format:
{{
  "sitemap": [
    {{"id": "home", "title": "Home", "slug": "/", "description": "Homepage", "order": 1}}
  ],
  "navigation": {{"primary": ["home"], "secondary": [], "structure": "horizontal"}},
  "userFlow": {{"entryPoints": [], "conversionPoints": [], "keyPages": []}},
  "recommendations": {{"essentialPages": [], "optionalPages": [], "features": [], "designStyle": ""}},
  "seo": {{"primaryKeywords": [], "secondaryKeywords": [], "metaDescription": ""}}
}}

Guidelines:
- Keep navigation simple (max 7 main items)
- Every page reachable within 3 clicks
- SEO-friendly URL slugs

{JSON_ONLY}"""


CONTENT_SYSTEM_PROMPT = f"""You are a professional copywriter specializing in web content. Write engaging, persuasive content that converts visitors into customers.

Content guidelines:
- Focus on benefits over features
- Clear, concise language in the active voice
- Include relevant keywords naturally
- Include clear calls-to-action
- Meta descriptions of 150-160 characters

Return JSON in this format:
{{
  "pageContent": {{
    "hero": {{"headline": "", "subheadline": "", "description": "", "cta": {{"text": "", "buttonText": "", "url": ""}}}},
    "sections": [{{"type": "features", "title": "", "content": "", "items": []}}]
  }},
  "seo": {{"title": "", "description": "", "keywords": []}},
  "brandVoice": {{"tone": "", "personality": "", "guidelines": []}}
}}

Write content for every page in the sitemap you are given.

{JSON_ONLY}"""


LAYOUT_SYSTEM_PROMPT = f"""You are a professional UI/UX designer specializing in website layouts.

Design principles:
- Mobile-first responsive design on a 12-column grid
- Clear visual hierarchy and consistent spacing
- Accessibility (WCAG 2.1 AA)
- Reusable, atomic components

Return JSON in this format:
{{
  "layoutSystem": {{
    "grid": {{"columns": 12, "breakpoints": {{"mobile": "320px", "tablet": "768px", "desktop": "1024px"}}}},
    "typography": {{"fontFamily": {{"primary": ""}}, "scale": {{}}}},
    "colors": {{"primary": {{}}, "secondary": {{}}, "neutral": {{}}}}
  }},
  "pageLayouts": {{
    "home": {{"structure": "", "components": [], "responsive": {{}}}}
  }},
  "components": {{}},
  "accessibility": {{"focusIndicators": true, "skipLinks": true, "colorContrast": "WCAG AA"}}
}}

Provide a page layout for every page in the sitemap.

{JSON_ONLY}"""


EXPORT_SYSTEM_PROMPT = f"""You are a build engineer specializing in web export formats. Convert website structures into production-ready code.

Supported formats:
1. html: static HTML/CSS/JS files
2. nextjs: React components with routing
3. elementor: WordPress Elementor template JSON
4. zip: complete package with assets

Code quality: semantic HTML5, modern CSS with custom properties, accessible markup, responsive layouts.

Return JSON in this format:
{{
  "exportFormat": "html|nextjs|elementor|zip",
  "files": {{"index.html": "...", "styles.css": "..."}},
  "assets": {{"images": [], "fonts": [], "icons": []}},
  "structure": {{"html": {{}}, "css": {{}}, "javascript": {{}}}},
  "deployment": {{"buildCommands": [], "outputDir": "dist", "staticFiles": true}}
}}

{JSON_ONLY}"""


DEPLOYMENT_SYSTEM_PROMPT = f"""You are a DevOps engineer specializing in web deployments.

Platforms: coolify, vercel, netlify, github-pages, aws.
Apply security best practices (SSL, security headers, secret management) and plan rollbacks.

Return JSON in this format:
{{
  "deployment": {{"platform": "", "environment": "production", "buildCommand": "", "outputDirectory": ""}},
  "configuration": {{"environmentVariables": {{}}, "ssl": {{"enabled": true}}, "domain": {{"primary": ""}}}},
  "pipeline": {{"steps": [{{"name": "build", "command": "", "timeout": 300}}], "rollback": {{"enabled": true}}}},
  "security": {{"headers": {{}}}}
}}

{JSON_ONLY}"""


def architecture_prompt(context: PipelineContext) -> PromptPair:
    data = context.input_data
    details = _optional_lines(
        ("Style Preferences", data.get("style")),
        ("Industry", data.get("industry")),
        ("Target Audience", data.get("target_audience")),
        ("Competitors", data.get("competitors")),
    )
    user_prompt = f"""Create a website architecture for the following business:

Business Description: {data.get("brief", "")}
{details}

Analyze this business and provide a website structure that will help it achieve its goals online."""
    return PromptPair(ARCHITECTURE_SYSTEM_PROMPT, user_prompt.strip())


def content_prompt(context: PipelineContext) -> PromptPair:
    data = context.input_data
    details = _optional_lines(
        ("Page Type", data.get("page_type") or "general"),
        ("Target Audience", data.get("target_audience") or "general audience"),
        ("Tone", data.get("tone") or "professional but approachable"),
        ("Keywords", data.get("keywords")),
        ("Unique Value", data.get("unique_value")),
    )
    user_prompt = f"""Write compelling website content for:

Business Description: {data.get("brief", "")}
{details}

{_section("Website Architecture", context.get(StepId.ARCHITECTURE))}

Create content that grabs attention, communicates the value proposition, builds trust and includes clear calls-to-action."""
    return PromptPair(CONTENT_SYSTEM_PROMPT, user_prompt.strip())


def layout_prompt(context: PipelineContext) -> PromptPair:
    data = context.input_data
    details = _optional_lines(
        ("Style Preferences", data.get("style")),
        ("Industry", data.get("industry")),
    )
    user_prompt = f"""Design the layout system and page layouts for this website.

Business Description: {data.get("brief", "")}
{details}

{_section("Website Architecture", context.get(StepId.ARCHITECTURE))}

{_section("Website Content", context.get(StepId.CONTENT))}"""
    return PromptPair(LAYOUT_SYSTEM_PROMPT, user_prompt.strip())


def export_prompt(context: PipelineContext) -> PromptPair:
    data = context.input_data
    export_format = data.get("export_format")
    website_data = {
        "architecture": context.get(StepId.ARCHITECTURE),
        "content": context.get(StepId.CONTENT),
        "layout": context.get(StepId.LAYOUT),
    }
    details = _optional_lines(
        ("Include Assets", data.get("include_assets")),
        ("Minify Code", data.get("minify")),
        ("SEO Optimization", data.get("optimize_for_seo")),
        ("Target Framework", data.get("target_framework")),
    )
    user_prompt = f"""Compile website data for export in {export_format} format.

Export Format: {export_format}
{details}

{_section("Website Data", website_data)}

Generate complete, production-ready files that are deployment-ready and cross-platform compatible."""
    return PromptPair(EXPORT_SYSTEM_PROMPT, user_prompt.strip())


def deployment_prompt(context: PipelineContext) -> PromptPair:
    data = context.input_data
    platform = data.get("deploy_platform")
    details = _optional_lines(
        ("Environment", data.get("environment")),
        ("Domain", data.get("domain")),
    )
    user_prompt = f"""Configure deployment for the {platform} platform.

Platform: {platform}
{details}

{_section("Project Data", context.get(StepId.EXPORT))}

Include environment variables, security settings, a build and deploy pipeline, and rollback procedures."""
    return PromptPair(DEPLOYMENT_SYSTEM_PROMPT, user_prompt.strip())
