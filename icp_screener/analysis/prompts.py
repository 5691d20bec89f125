"""Claude prompt templates for research synthesis and narrative-gap scoring."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# PROMPT 1: Research synthesis
# Organizes the pre-gathered evidence document into named fields that
# analysis.fields.extract_field pulls back out.
# ---------------------------------------------------------------------------

RESEARCH_PROMPT = """You are a B2B research analyst synthesizing pre-gathered data about a company. All the raw data from web searches, homepage crawls, news articles, competitor reviews, case studies, and social content has already been collected and is provided below. Your job is to organize this data into a structured research report. Do NOT make up information — only use what is in the provided data. If data for a field is missing, say so.

=== SECTION A: STRATEGIC RESEARCH ===

PRODUCT_SUMMARY: [What does the product do in 2-3 sentences. Not marketing language - describe it plainly like you're explaining to a colleague. Include the target market and key use cases.]

TARGET_CUSTOMER: [Who buys this? Company size (SMB/mid-market/enterprise), industries, geographic focus. Be specific - "Series B+ SaaS companies" not just "businesses." Use case studies, homepage logos, and LinkedIn description as evidence.]

TARGET_DECISION_MAKER: [Who is the primary buyer - the person who signs the contract, not the user. Look at case study data for who is quoted. Then infer ONE LEVEL UP to the budget holder. Example: if a Director of Content Marketing is quoted, the decision maker is the CMO or VP of Marketing. State the inferred decision maker title.]

TOP_3_OUTCOMES: [The 3 most specific outcomes this product helps the decision maker's team achieve. Must be outcomes with numbers/metrics when available. Example: "Reduce no-shows by 75%" not "appointment reminders." Pull from case studies and news data.]

TOP_3_DIFFERENTIATORS: [What 3 things make this company different from competitors? Use the competitor comparison data and reviews. IMPORTANT: deprioritize "easy to use", "great UX", "simple interface" — these are not meaningful differentiators. Look for capability themes, unique approaches, integration advantages, or specific outcomes. Each differentiator should pass the test: "Could a competitor also say this?" If yes, it's not a differentiator.]

MAJOR_ANNOUNCEMENTS: [ALL major product launches, acquisitions, partnerships, pivots, rebrands, and new market entries from the news data. Include dates. Exclude funding rounds unless they accompanied a product/market change. If no major announcements found, write "None found."]

COMPETITORS: [Name each major competitor (3-5) from the comparison data. For each, state one sentence on what capability THIS company has that THAT competitor lacks.]

=== SECTION B: COMPANY FACTS ===

COMPANY_CUSTOMERS: [Named customers from case studies, homepage content, news articles]
COMPANY_FUNDING: [Each round: date, amount, lead investors. From funding data.]
COMPANY_TEAM_SIZE: [Approximate headcount from LinkedIn data or news]

=== SECTION C: HOMEPAGE & PRODUCT PAGE CONTENT ===

Use the homepage content crawled via Exa. This is clean markdown extracted from the live page.

RAW_HOMEPAGE_CONTENT: [Reproduce the homepage content IN FULL verbatim - every word from the crawled data. This is critical, the scoring step reads this directly. If not available, write "NOT AVAILABLE."]

HOMEPAGE_SECTIONS: [Break the homepage into sequential sections as they appear top-to-bottom on the page. Each section is a distinct visual block (hero, features, social proof, testimonials, CTA, etc.). For each section, capture the copy verbatim. Format as:

SECTION 1 (Hero): [Exact headline, subheadline, and any supporting text in the hero area. This is the most important section.]
SECTION 2: [Next visual block below the hero - could be logos, a value prop section, a features grid, etc. Include a brief label of what it is, then the copy.]
SECTION 3: [Next block]
SECTION 4: [Next block]
...continue for all sections on the page.

Capture ALL text content in each section including headlines, body copy, button text, testimonial quotes, metric callouts, and badge/label text. The scoring step uses this to evaluate messaging quality with decreasing weight from top to bottom.]

HOMEPAGE_NAVIGATION: [All main nav items from the homepage content. Note whether organized by product names or buyer problems. List any product-specific subnav items.]

HOMEPAGE_BANNERS_AND_LINKS: [Any promotional banners, "What's New" links, announcement links visible in the homepage content.]

PRODUCT_PAGES: [For EACH distinct product/subpage crawled, capture: product name, hero headline, key value prop, implied audience, and implied use case. Format as:
- Product 1: [name] | Hero: [headline] | Value prop: [key claim] | Audience: [who it's for]
- Product 2: [name] | Hero: [headline] | Value prop: [key claim] | Audience: [who it's for]
If there is only one product (no separate product pages in the data), write "Single product - no separate product pages."]

NEW_DIRECTION_PAGE: [If the news data reveals a recent change (acquisition, pivot, new product), identify the best piece of content describing the new direction and reproduce its key message (up to 2000 chars). If no recent change, write "N/A."]

=== SECTION D: LINKEDIN ===

LINKEDIN_COMPANY_DESCRIPTION: [From the LinkedIn data provided, extract and reproduce the company About section verbatim. If not available, write "Not found."]

=== SECTION E: CEO/FOUNDER VOICE ===

CEO_FOUNDER_NAME: [From tweets and CEO content data, identify the CEO or Founder. Report: Name, Title.]

CEO_RECENT_CONTENT: [From the tweets and CEO blog/podcast/conference data, capture up to 5 pieces of content. For each:
- Source (tweet, blog, podcast, conference, etc.)
- Date (approximate)
- Key message in 1-2 sentences: what narrative is the CEO pushing?
If no recent content found, write "None found."]

CEO_NARRATIVE_THEME: [Based on the CEO content above, what is the CEO's current narrative theme in 1-2 sentences? How does this compare to the homepage messaging?]

=== SECTION F: PEOPLE SEARCH ===

NEW_MARKETING_LEADER: [From any of the provided data, identify if there is a VP of Marketing, CMO, or Head of Marketing who joined in the last 12 months. Report: Name, Title, ~Start Date. If not found, write "None found."]

PRODUCT_MARKETING_PEOPLE: [From any of the provided data, identify product marketing people. Report: Name (Title, ~Start Date) for each. If not found, write "None found."]"""

SYNTHESIS_TEMPLATE = (
    "Synthesize the following pre-gathered research data into a structured report.\n\n"
    "Company: {company_name}\nWebsite: {website}\n\n{evidence}\n\n{research_prompt}"
)


# ---------------------------------------------------------------------------
# PROMPT 2: Narrative-gap scoring
# The rubric text is calibration-sensitive: edit wording only together with
# the stored training examples.
# ---------------------------------------------------------------------------

SCORING_PROMPT = """You are scoring a B2B SaaS company for narrative gap severity. CRITICAL: You MUST respond with a single JSON object. Do NOT use the old SCORE_A_DIFFERENTIATION/SCORE_A_JUSTIFICATION text format. Return ONLY a JSON object as specified below.

You have been given comprehensive research about this company. Your job is to evaluate the narrative using an additive scoring system. Do not gather more information.

=== SCORING SYSTEM ===

Score each factor 1, 2, or 3. Higher = more pain = better ICP fit. Total score = sum of all 6 factors (range: 6-18).

=== FACTOR INSTRUCTIONS ===

FACTOR A — DIFFERENTIATION: Compare TOP_3_DIFFERENTIATORS + COMPETITORS vs HOMEPAGE_SECTIONS. Hero carries most weight.
+1: Hero or Section 2 communicates a specific capability competitors don't claim
+2: Some differentiation exists but generic, buried, or could apply to competitors  
+3: Homepage could belong to any competitor

FACTOR B — OUTCOMES: Compare TOP_3_OUTCOMES vs HOMEPAGE_SECTIONS. Strategic = exec priorities (cost, revenue, risk, margin). Tactical = operational (time saved, tasks automated).
+1: Homepage prominently features quantified strategic outcomes in Sections 1-2
+2: Outcomes exist but tactical, buried, or lack metrics
+3: Dominated by features — outcomes absent or vague

FACTOR C — CUSTOMER-CENTRIC: Check who is the grammatical subject in HOMEPAGE_SECTIONS. Evaluate company-authored copy ONLY — exclude testimonial/quote sections.
+1: Hero frames value from buyer's perspective — buyer is the subject
+2: Mixed — some buyer language but hero defaults to product descriptions
+3: Homepage primarily about the product/company — buyer's world secondary

FACTOR D — PRODUCT CHANGE: Read MAJOR_ANNOUNCEMENTS, CEO_RECENT_CONTENT, CEO_NARRATIVE_THEME.
+1: Product stable — no narrative-relevant changes. Minor updates, bug fixes, compliance changes, vendor swaps. Incremental feature releases that don't alter the core value prop. Partnerships that don't change what the company offers. Test: Would a prospect's understanding of the product change? If no → 1.
+2: Product expanding — value prop is stretching. New module or capability that adds a meaningful use case. Acquisition or partnership that extends what the platform can do. Test: Would the "what we do" section of a pitch need updating? If yes → 2.
+3: Product transforming — the company story needs rewriting. Core offering has fundamentally shifted (new primary product, pivot, rebrand). Company is solving a materially different problem than 12 months ago. Test: Would someone who visited the homepage a year ago be confused by what the company is now? If yes → 3.

FACTOR E — AUDIENCE CHANGE: Read MAJOR_ANNOUNCEMENTS, CEO content, TARGET_CUSTOMER, PRODUCT_PAGES.
+1: Buyer and market consistent 12+ months
+2: Expanding into adjacent segment or secondary persona
+3: Meaningful shift in who they sell to

FACTOR F — MULTI-PRODUCT: Read PRODUCT_PAGES, HOMEPAGE_NAVIGATION, HOMEPAGE_SECTIONS.
+1: Single product or tightly integrated suite, unified narrative
+2: Multiple products but homepage connects them under one story
+3: Products have different audiences/value props — feels fragmented

=== DISQUALIFICATION FLAGS ===
Check first. If any apply, set icp_fit to "Disqualified":
- Acquired by larger company (not independent)
- Consumer product, not B2B SaaS
- Crypto/Web3/prediction markets
- Pre-product or research-phase

=== CALIBRATION ===
- "1" = basics covered, "3" = not doing the job
- Anchor to SECTION NUMBER. Outcome in Section 4 = score 2, not 1.
- CEO voice is a tiebreaker for D and E.
- Well-funded company with generic homepage = bigger gap than seed-stage.

=== OUTPUT FORMAT ===

Return ONLY valid JSON (no markdown, no backticks, no text before/after). Use this exact structure:

{
  "total_score": 12,
  "icp_fit": "Moderate",
  "disqualification_reason": "None",
  "summary": "2-3 sentence summary of company achievement and narrative gap.",
  "factor_a": {
    "score": 3,
    "differentiators": [
      "First differentiator from research",
      "Second differentiator from research",
      "Third differentiator from research"
    ],
    "homepage_sections": [
      { "name": "Hero", "finding": "Quote or description of what hero says about differentiation", "status": "miss" },
      { "name": "Customers", "finding": "What this section says", "status": "miss" },
      { "name": "Product", "finding": "What this section says", "status": "hit" },
      { "name": "Partnership", "finding": "What this section says", "status": "hit" }
    ],
    "verdict": "One sentence verdict explaining the score."
  },
  "factor_b": {
    "score": 2,
    "decision_maker": "Title of primary buyer",
    "strategic_outcomes": [
      "Exec-level outcome 1 from research (cost/revenue/risk/margin)",
      "Exec-level outcome 2"
    ],
    "tactical_outcomes": [
      "Operational outcome 1 (time saved, productivity)",
      "Operational outcome 2"
    ],
    "homepage_sections": [
      { "name": "Hero", "finding": "What the hero says about outcomes", "outcome_type": "none" },
      { "name": "Customers", "finding": "Quote with metric if present", "outcome_type": "tactical" },
      { "name": "Product", "finding": "Quote or description", "outcome_type": "tactical" },
      { "name": "Partnership", "finding": "Description", "outcome_type": "none" }
    ],
    "verdict": "One sentence verdict."
  },
  "factor_c": {
    "score": 3,
    "sections": [
      { "name": "Hero", "orientation": "product-centric", "evidence": "Quote showing grammatical subject" },
      { "name": "Customers", "orientation": "excluded", "evidence": "Testimonial quotes — buyer's words" },
      { "name": "Product", "orientation": "product-centric", "evidence": "Quote showing subject" },
      { "name": "Partnership", "orientation": "product-centric", "evidence": "Quote showing subject" }
    ],
    "verdict": "One sentence verdict."
  },
  "factor_d": {
    "score": 2,
    "changes": [
      {
        "date": "Mid 2024",
        "name": "Change name",
        "before": "What the product/value prop was before",
        "after": "What it became after"
      }
    ],
    "verdict": "One sentence verdict. Note if homepage reflects changes or not."
  },
  "factor_e": {
    "score": 1,
    "before": { "buyer": "Title", "department": "Dept", "market": "Market segment" },
    "today": { "buyer": "Title", "department": "Dept", "market": "Market segment" },
    "verdict": "One sentence verdict."
  },
  "factor_f": {
    "score": 1,
    "products": [
      { "name": "Product or module name", "tag": "module" }
    ],
    "description": "Brief description of product architecture.",
    "verdict": "One sentence verdict."
  }
}

CRITICAL RULES:
- Return ONLY the JSON object. No text before or after. No markdown code fences.
- homepage_sections: Include the first 4 significant content sections (skip nav, footer, logo bars). Label each with 1-2 word name.
- status values for factor_a: "hit" (differentiator found) or "miss" (absent/generic)
- outcome_type values for factor_b: "strategic", "tactical", or "none"
- orientation values for factor_c: "product-centric", "customer-centric", "mixed", or "excluded" (for testimonial sections)
- For factor_d changes array: empty array [] if no changes. Include date as "Month YYYY" or "Early/Mid/Late YYYY".
- For factor_f tag values: "module" (capability within one product), "product" (distinct product), or "suite" (separate product line)
- All string values must be properly escaped for JSON.

REMEMBER: Output ONLY the JSON object. No text before it. No text after it. No markdown fences. Start your response with { and end with }."""

SCORING_SYSTEM_PROMPT = (
    "You are a JSON-only scoring API. You MUST respond with a single valid JSON object. "
    "No markdown, no code fences, no explanatory text. Start your response with { and end with }."
)

SCORING_HEADER = (
    "Score this company's narrative gap using the research provided.\n\n"
    "Company: {company_name}\nWebsite: {website}\n\n"
    "=== RESEARCH RESULTS ===\n{research}\n=== END RESEARCH ===\n\n"
)


# ---------------------------------------------------------------------------
# Calibration examples
# ---------------------------------------------------------------------------

FACTOR_NAMES = {
    "A": "DIFFERENTIATION",
    "B": "OUTCOMES",
    "C": "CUSTOMER_CENTRIC",
    "D": "PRODUCT_CHANGE",
    "E": "AUDIENCE_CHANGE",
    "F": "MULTI_PRODUCT",
}

CALIBRATION_OPEN = (
    "=== CALIBRATION EXAMPLES ===\n"
    "Below are manually reviewed and corrected scoring examples for individual factors. "
    "Use these to calibrate your scoring. Match the reasoning style and score levels shown here.\n\n"
)

CALIBRATION_CLOSE = (
    "=== END CALIBRATION EXAMPLES ===\n\n"
    "Now score the following company using the same standards:\n\n"
)

SNAPSHOT_CHARS = 1500
