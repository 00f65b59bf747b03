"""All prompt templates used by the research pipeline."""

# ──────────────────────────────────────────────────────────────────────
# SHARED CONTEXT
# ──────────────────────────────────────────────────────────────────────

RESEARCH_CONTEXT = """
Research topic: "{topic}"

TODAY'S DATE IS {today}. The research is for {audience} who are looking for
content on {platform} in the form of a {content_type}.

Use {sources_text} to ensure accuracy and relevance, prioritising sources
published within the last 90 days. For all statistics include the
publication date (month/year) so recency can be verified.
{user_context}{entity_block}{language_block}"""

USER_CONTEXT_BLOCK = """
====================
ADDITIONAL USER-PROVIDED DATA - MUST USE THIS INFORMATION
====================
{context}
====================
"""

ENTITY_BLOCK = """
TARGETED ENTITY: "{company_name}"
Before discussing general industry trends, include specific information about
{company_name}: its products or services, positioning, recent news and how it
compares with two or three competitors. State where each company-specific fact
comes from (official website, LinkedIn page, press release, review site).
"""

LANGUAGE_BLOCK = """
IMPORTANT: Your entire response MUST be written in {language}. This includes
ALL headings, data points, citations, and explanatory text.
"""

# ──────────────────────────────────────────────────────────────────────
# SUBTASKS
# ──────────────────────────────────────────────────────────────────────

SUBTASK_FACTS = """
You are researching one part of a larger report.
{research_context}

YOUR PART: CURRENT FACTS & MARKET DATA
- The current state of "{topic}": size, growth, adoption and key statistics.
- Trends from the last 3-6 months and what is driving them.
- Notable recent events, launches or regulatory changes.
Cite sources with publication dates. Do not cover audience analysis or
competitors; other researchers handle those.
"""

SUBTASK_AUDIENCE = """
You are researching one part of a larger report.
{research_context}

YOUR PART: AUDIENCE & PAIN-POINT ANALYSIS
- Who the audience for "{topic}" is: demographics, roles, motivations.
- Their most pressing pain points, questions and objections.
- The language and content formats that resonate with them on {platform}.
Cite sources with publication dates. Do not cover market sizing or
competitors; other researchers handle those.
"""

SUBTASK_COMPETITIVE = """
You are researching one part of a larger report.
{research_context}

YOUR PART: COMPETITIVE LANDSCAPE & BEST PRACTICES
- The main players, products or voices around "{topic}" and how they differ.
- Current best practices and what top performers do differently.
- Gaps and opportunities a new {content_type} could exploit.
Cite sources with publication dates. Do not cover market sizing or audience
analysis; other researchers handle those.
"""

DEGRADED_SUBTASK = """
Provide only the essential information about {angle_title} for the topic
"{topic}". Keep it short: 5-8 bullet points with the most important facts,
each with a source and date where possible.
"""

PLACEHOLDER_SECTION = (
    "[Section {number} of {total}: {angle_title} for \"{topic}\" could not be "
    "researched. The research service did not return usable content for this "
    "section; treat it as unresearched.]"
)

# ──────────────────────────────────────────────────────────────────────
# RECOMBINATION
# ──────────────────────────────────────────────────────────────────────

RECOMBINATION_TEMPLATE = """
You are a senior research editor. Three researchers each investigated one
angle of the topic "{topic}". Merge their findings into ONE cohesive research
document. Remove duplication, reconcile conflicting figures (prefer the most
recent dated source) and keep every citation.

Use exactly this section skeleton, as markdown headings:
# Research Report: {topic}
## Executive Summary
## Market Overview
## Audience Analysis
## Pain Points
## Competitive Landscape
## Recommendations

If a researcher's section is marked as unresearched, say so briefly in the
matching section instead of inventing content.

Original request context (truncated):
{context_echo}
"""

SYNTHESIS_PROMPT = """{template}

====================
RESEARCHER FINDINGS
====================
{sections}
"""

FALLBACK_SUMMARY = (
    "This report combines {count} independently researched sections on "
    "\"{topic}\". Automatic synthesis was unavailable, so the sections appear "
    "below as delivered by each researcher."
)
