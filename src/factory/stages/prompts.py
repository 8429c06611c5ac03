"""Agent instructions for each pipeline stage."""

from src.factory.analysis.models import ReviewDepth


NO_ISSUES_MARKER = "NO ISSUES FOUND"

UNDERSTAND_CODEBASE_PROMPT = """Goal
Build an internal map of the codebase. Do not change code. Do not refactor. Do not optimize.

Operating mode
Static analysis first. Minimal assumptions. Prefer certainty over completeness.

Required steps

1. Detect codebase type: language(s), runtime, frameworks, monorepo or single service
2. Identify execution roots: primary entry files, CLI commands, server startup paths, test runners
3. Build directory graph: top level folders, purpose of each folder, ownership boundaries if visible
4. Dependency flow analysis: module import graph, direction of dependencies, shared utilities vs feature code
5. Architecture inference: architectural style if evident, layer boundaries, cross layer violations
6. State and data flow: where state lives, how data moves between modules, persistence boundaries
7. External interfaces: APIs exposed, APIs consumed, databases, queues, filesystems
8. Configuration and environment: config files, environment variables, feature flags
9. Change impact map: high blast radius files, core abstractions, unsafe modification zones
10. Gaps and unknowns: missing docs, ambiguous responsibilities, implicit behavior

Output format
* Use structured bullet points
* Use short phrases, not prose
* Use file paths when referencing code
* Flag assumptions explicitly
* End with a one page mental model of the system

Constraints
* No code edits
* No speculative refactors
* No style commentary
* No opinions unless clearly labeled as inference

Primary objective
Enable safe future modifications by maximizing structural understanding."""

IMPLEMENT_GUIDELINES = """## Implementation Guidelines:
- Understand the existing codebase structure first
- Write clean, idiomatic code following project conventions
- Handle edge cases and errors appropriately
- Add necessary comments for complex logic
- Keep changes focused and minimal"""

SIMPLIFY_PROMPT = """Refine the recently modified code for clarity, consistency, and maintainability while preserving all functionality.

## Core Principles:

### 1. Functionality Preservation
- Never change what the code does - only how it does it
- All original features, outputs, and behaviors must remain intact

### 2. Project Standards Alignment
- Follow the project's established conventions and idioms
- Maintain established naming conventions

### 3. Clarity Enhancement
- Reduce unnecessary complexity and nesting
- Eliminate redundant code and abstractions
- Improve readability through clear variable and function names
- Consolidate related logic
- Remove comments that describe obvious code
- Avoid nested conditional expressions; prefer explicit branches
- Choose clarity over brevity

### 4. Balanced Approach
- Avoid over-simplification that could reduce maintainability
- Don't create overly clever solutions
- Don't combine too many concerns into single functions

### 5. Scoped Focus
- Target the recently modified code sections
- Don't refactor unrelated code unless explicitly requested

## Actions:
1. IDENTIFY opportunities for simplification in recently modified code
2. APPLY refinements that improve readability without changing behavior
3. VERIFY all functionality is preserved
4. EXPLAIN significant changes made"""

REVIEW_FOCUS = {
    ReviewDepth.MINIMAL: """## Quick Review Points:
1. **Bugs**: Obvious logic errors or broken behavior
2. **Security**: Anything that accepts untrusted input""",
    ReviewDepth.STANDARD: """## Critical Review Points:
1. **Bugs**: Logic errors, off-by-one, null refs, race conditions
2. **Security**: Input validation, injection, auth issues
3. **Performance**: N+1 queries, unnecessary loops, memory leaks
4. **Maintainability**: Code clarity, naming, complexity""",
    ReviewDepth.THOROUGH: """## In-Depth Review Points:
1. **Bugs**: Logic errors, off-by-one, null refs, race conditions, unhandled states
2. **Security**: Input validation, injection, auth and authorization, secrets handling
3. **Performance**: N+1 queries, unnecessary loops, memory leaks, blocking I/O
4. **Maintainability**: Code clarity, naming, complexity, duplication
5. **Edge Cases**: Empty inputs, boundaries, concurrency, failure paths
6. **Tests**: Missing or weak coverage of the changed behavior""",
}

REVIEW_ACTIONS = f"""## Action Required:
- FIX any issues found immediately
- Be specific about what you changed and why
- If the code is clean and you changed nothing, end your reply with the line: {NO_ISSUES_MARKER}"""

SOLID_PROMPT = """Review the code for SOLID principles and Clean Code compliance:

## SOLID Principles:
- S - Single Responsibility: each class/function has ONE reason to change
- O - Open/Closed: open for extension, closed for modification
- L - Liskov Substitution: subtypes must be substitutable for base types
- I - Interface Segregation: small, focused interfaces
- D - Dependency Inversion: depend on abstractions, inject dependencies

## Clean Code Checklist:

**Naming:**
- Intention-revealing, pronounceable, searchable names
- Classes are nouns, methods are verbs, booleans are questions

**Functions:**
- Small, single purpose
- Few parameters (group related ones)
- No hidden side effects

**Code Smells to Fix:**
- Magic numbers → named constants
- Deep nesting → early returns/extraction
- Duplicate code → shared helpers
- Long methods → smaller functions

## Actions:
1. IDENTIFY all violations
2. REFACTOR to fix each issue
3. EXPLAIN your changes"""

TEST_PROMPT = """Testing phase:

1. **Run existing tests** - Fix any failures
2. **Add new tests** for changed code:
   - Happy path tests
   - Edge cases
   - Error conditions
3. **Verify coverage** - Ensure critical paths are tested
4. **Final test run** - All tests must pass

Report: tests run, passed, failed, new tests added"""

COMMIT_PROMPT = """Commit the changes:

## Commit Message Requirements:

**Subject Line:**
- Imperative mood ('Add' not 'Added')
- At most 50 characters, no trailing period
- Format: type(scope): description

**Body - WHY:**
- What problem does this solve?
- Why was this approach chosen?

**Body - WHAT:**
- Key technical changes
- Files/components affected

**Structure:**
- Blank line after subject
- Body wrapped at 72 chars

## Tasks:
1. Stage relevant files (git add)
2. Commit with an excellent message

Do not add any attribution or co-author lines."""

PUSH_INSTRUCTION = "Then push to remote."

CHANGELOG_PROMPT = """Update CHANGELOG.md:

## Format (Keep a Changelog):
```markdown
## [Unreleased]

### Added
- New features

### Changed
- Changes in existing functionality

### Fixed
- Bug fixes
```

1. Add entry for this change under appropriate category
2. Be concise but descriptive
3. Commit the CHANGELOG update"""


def understand_prompt(requirement: str) -> str:
    return (
        f"{UNDERSTAND_CODEBASE_PROMPT}\n\n"
        f"Context: I need to understand this codebase to implement the following requirement:\n"
        f"{requirement}\n\n"
        f"Focus your analysis on areas most relevant to this requirement while still "
        f"building a complete mental model."
    )


def implement_prompt(requirement: str) -> str:
    return f"{requirement}\n\n{IMPLEMENT_GUIDELINES}"


def review_prompt(depth: ReviewDepth) -> str:
    """Review instruction; the depth selects the checklist."""
    return f"Review and improve the changes:\n\n{REVIEW_FOCUS[depth]}\n\n{REVIEW_ACTIONS}"


def commit_prompt(skip_push: bool) -> str:
    """Commit instruction, with the push step unless pushing is disabled."""
    if skip_push:
        return COMMIT_PROMPT
    return f"{COMMIT_PROMPT}\n\n{PUSH_INSTRUCTION}"
