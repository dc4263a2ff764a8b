from minimentor.prompt_assembler import PromptAssembler


def test_known_field_adds_silent_tailoring_instruction():
    directive = PromptAssembler().assemble("software development")
    assert "The user works in or is interested in the software development field" in directive
    assert "without explicitly mentioning that you know their field unless they mentioned it directly" in directive
    assert "Try to identify the user's field" not in directive


def test_unknown_field_asks_model_to_infer():
    directive = PromptAssembler().assemble(None)
    assert "Try to identify the user's field or interests" in directive
    assert "works in or is interested in" not in directive


def test_policy_and_directive_conventions_present():
    directive = PromptAssembler().assemble("design")
    assert directive.startswith("You are MiniMentor")
    assert "Ask clarifying questions" in directive
    assert '"## Action Steps"' in directive
    assert '"## Recommended Resources"' in directive
    assert "VISUAL: [brief description" in directive
    assert directive.rstrip().endswith("AUDIO: true")
    assert "{" not in directive


def test_assemble_is_deterministic():
    assembler = PromptAssembler()
    assert assembler.assemble("finance") == assembler.assemble("finance")
    assert assembler.assemble(None) == PromptAssembler().assemble(None)
