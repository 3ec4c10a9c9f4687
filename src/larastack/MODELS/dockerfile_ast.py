"""
Models for the Dockerfile Abstract Syntax Tree.
"""
from typing import List, Optional
from pydantic import BaseModel

class Instruction(BaseModel):
    """
    Represents a single instruction in a Dockerfile.
    """
    instruction: str
    arguments: List[str]
    raw: str

class DockerfileAST(BaseModel):
    """
    Represents the complete Abstract Syntax Tree of a Dockerfile.
    """
    instructions: List[Instruction] = []

    @property
    def base_image(self) -> Optional[str]:
        """
        The image of the last ``FROM`` (the final build stage), without its alias.
        """
        image = None
        for inst in self.instructions:
            if inst.instruction == "FROM" and inst.arguments:
                words = inst.arguments[0].split()
                words = [w for w in words if not w.startswith('--')]
                if words:
                    image = words[0]
        return image

    @property
    def exposed_ports(self) -> List[int]:
        ports = []
        for inst in self.instructions:
            if inst.instruction != "EXPOSE":
                continue
            for word in " ".join(inst.arguments).split():
                port = word.split('/', 1)[0]
                if port.isdigit():
                    ports.append(int(port))
        return ports
